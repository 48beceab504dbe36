"""System prompts and message formatting for multi-model conversations."""

from typing import Iterable, List, Optional, Sequence

from ..models import HUMAN_SENDER, ChatMessage
from ..providers.types import RequestMessage
from .types import DiscussionContext, MessageRouting, RoutingType

_MULTI_AGENT_GUIDELINES = (
    "Guidelines:\n"
    "- Reply to the user or speak to another AI participant directly\n"
    "- Address a specific model with @ModelName when it helps\n"
    "- Build on what other models already said instead of repeating it\n"
    "- Add new information and perspectives to the shared discussion\n"
    "- Stay collaborative and respectful"
)

_LLM_TO_LLM_GUIDELINES = (
    "Guidelines for talking with other models:\n"
    "- Address a specific model with @ModelName when it helps\n"
    "- Acknowledge and extend other models' contributions\n"
    "- Ask clarifying questions or offer an alternative view\n"
    "- Disagree respectfully and back counterarguments with reasons\n"
    "- Share knowledge that moves the discussion forward"
)

_ROUTING_INSTRUCTIONS = {
    RoutingType.TARGETED: (
        "{sender} mentioned you directly, together with: {mentioned}.\n"
        "Acknowledge the mention and answer the message itself."
    ),
    RoutingType.REPLY: (
        "{sender} is replying to an earlier message in this thread.\n"
        "Continue the exchange naturally from where it left off."
    ),
    RoutingType.BROADCAST: (
        "This message is addressed to every participant.\n"
        "Respond if you have something useful to add."
    ),
}


def build_multi_agent_system_prompt(participant_names: Sequence[str], base_prompt: Optional[str] = None) -> str:
    """Preamble sent to every model in a fan-out turn."""
    sections = [
        "You are one of several AI models in a conversation with a human user.",
        f"Current participants: {', '.join(participant_names)}\n"
        "Your role: give a thoughtful answer while staying aware of the other participants.",
        _MULTI_AGENT_GUIDELINES,
    ]
    if base_prompt:
        sections.append(f"Additional context: {base_prompt}")
    return "\n\n".join(sections)


def build_llm_to_llm_system_prompt(
    routing: MessageRouting,
    context: DiscussionContext,
    base_prompt: Optional[str] = None,
) -> str:
    """Preamble for routed messages; wording depends on the routing type."""
    names = {p.id: p.display_name for p in context.active_participants}
    sender = names.get(routing.sender_id, routing.sender_id)

    routing_type = routing.routing_type
    if routing_type == RoutingType.TARGETED and not routing.mentioned_models:
        routing_type = RoutingType.BROADCAST
    instruction = _ROUTING_INSTRUCTIONS[routing_type].format(
        sender=sender,
        mentioned=", ".join(m.display_name for m in routing.mentioned_models),
    )

    sections = [
        "You are one of several AI models in a shared conversation.\n\n"
        f"Current participants: {', '.join(names.values())}\n"
        f"Thread context: {context.context_summary}\n"
        f"Turn count: {context.turn_count}",
        instruction,
        _LLM_TO_LLM_GUIDELINES,
    ]
    if base_prompt:
        sections.append(f"Additional context: {base_prompt}")
    sections.append(
        "You are talking with other AI models and possibly a human user. "
        "Keep it natural and useful."
    )
    return "\n\n".join(sections)


def to_request_message(message: ChatMessage) -> RequestMessage:
    if message.sender == HUMAN_SENDER:
        return RequestMessage(role="user", content=message.content)
    return RequestMessage(role="assistant", content=message.content, name=message.sender)


def chat_to_request_messages(messages: Iterable[ChatMessage]) -> List[RequestMessage]:
    return [to_request_message(message) for message in messages]


def format_routed_messages(history: Iterable[ChatMessage], current: ChatMessage) -> List[RequestMessage]:
    """History without ``current``, followed by ``current``."""
    formatted = [to_request_message(m) for m in history if m.id != current.id]
    formatted.append(to_request_message(current))
    return formatted
