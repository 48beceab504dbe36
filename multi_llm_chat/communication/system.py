"""
Message routing between the human and the models.

Decides who a message is for, keeps conversation threads and their rolling
discussion context, and dispatches routed messages through a send callback
supplied by the orchestrator.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from ..models import HUMAN_SENDER, ChatMessage, Participant
from ..providers.types import LLMRequest, LLMResponse, RequestMessage, RequestMetadata, ResponseMetadata
from ..providers.utils import extract_error_message
from .mentions import parse_mentions
from .prompts import build_llm_to_llm_system_prompt, format_routed_messages
from .types import (
    ConversationThread,
    DiscussionContext,
    MessageRouting,
    ParsedMention,
    RoutingType,
    ThreadType,
)

logger = logging.getLogger(__name__)

SendFn = Callable[[str, LLMRequest], Awaitable[LLMResponse]]

SUMMARY_WINDOW = 5


def _new_thread_id() -> str:
    return f"thread_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def summarize_discussion(
    history: Sequence[ChatMessage],
    participants: Iterable[Participant] = (),
    topic: Optional[str] = None,
    turn_count: int = 0,
) -> str:
    """Short human-readable summary used inside prompts."""
    if not history:
        return topic or "New discussion"

    names = {p.id: p.display_name for p in participants}
    names.setdefault(HUMAN_SENDER, "User")
    recent = list(history)[-SUMMARY_WINDOW:]
    speakers: List[str] = []
    for message in recent:
        name = names.get(message.sender, message.sender)
        if name not in speakers:
            speakers.append(name)

    summary = f"Discussion between {', '.join(speakers)}"
    if topic:
        summary += f" about {topic}"
    summary += f". {turn_count} turns so far, {len(recent)} messages in the latest exchange."
    return summary


class LLMCommunicationSystem:
    """Routing decisions, threads and discussion contexts for one conversation space."""

    def __init__(self, thread_id_factory: Callable[[], str] = _new_thread_id):
        self._thread_id_factory = thread_id_factory
        self._threads: Dict[str, ConversationThread] = {}
        self._thread_by_message: Dict[str, str] = {}
        self._contexts: Dict[str, DiscussionContext] = {}

    @staticmethod
    def parse_mentions(content: str, participants: Iterable[Participant]) -> List[ParsedMention]:
        return parse_mentions(content, participants)

    def create_message_routing(
        self,
        message: ChatMessage,
        participants: Sequence[Participant],
        reply_to_message: Optional[ChatMessage] = None,
    ) -> MessageRouting:
        """
        Decide whether ``message`` is a reply, a targeted message or a broadcast.

        Replies go to the mentioned models if any, otherwise back to the author
        of the message being replied to. Targeted messages go to the mentioned
        models in order. Everything else goes to every active participant.
        """
        mentions = self.parse_mentions(message.content, participants)
        mentioned_ids = list(dict.fromkeys(m.model_id for m in mentions))

        if reply_to_message is not None:
            routing_type = RoutingType.REPLY
            if mentioned_ids:
                target_ids = mentioned_ids
            elif reply_to_message.sender != message.sender:
                target_ids = [reply_to_message.sender]
            else:
                # Replying to oneself: nobody else is implied, so ask everyone.
                target_ids = [p.id for p in participants if p.is_active and p.id != message.sender]
        elif mentioned_ids:
            routing_type = RoutingType.TARGETED
            target_ids = mentioned_ids
        else:
            routing_type = RoutingType.BROADCAST
            target_ids = [p.id for p in participants if p.is_active]

        return MessageRouting(
            message_id=message.id,
            sender_id=message.sender,
            routing_type=routing_type,
            target_ids=target_ids,
            is_direct_message=bool(mentions),
            mentioned_models=mentions,
        )

    # ---- threads ----

    def create_or_update_thread(
        self,
        message_id: str,
        sender_id: str,
        target_ids: Sequence[str],
        reply_to_message_id: Optional[str] = None,
    ) -> str:
        """
        Return the thread for ``message_id``.

        A reply to a message that already belongs to a thread extends that
        thread; anything else starts a new one.
        """
        thread = None
        if reply_to_message_id is not None:
            existing_id = self._thread_by_message.get(reply_to_message_id)
            thread = self._threads.get(existing_id) if existing_id else None

        if thread is not None:
            thread.add_participants([sender_id, *target_ids])
            if thread.thread_type == ThreadType.USER_INITIATED and sender_id != HUMAN_SENDER:
                thread.thread_type = ThreadType.MIXED
            elif thread.thread_type == ThreadType.LLM_TO_LLM and HUMAN_SENDER in thread.participant_ids:
                thread.thread_type = ThreadType.MIXED
            thread.is_active = True
            thread.updated_at = time.time()
        else:
            thread = ConversationThread(
                id=self._thread_id_factory(),
                thread_type=(
                    ThreadType.USER_INITIATED if sender_id == HUMAN_SENDER else ThreadType.LLM_TO_LLM
                ),
                parent_message_id=reply_to_message_id,
            )
            thread.add_participants([sender_id, *target_ids])
            self._threads[thread.id] = thread
            logger.debug(f"Created {thread.thread_type.value} thread {thread.id}")

        self._thread_by_message[message_id] = thread.id
        return thread.id

    def add_message_to_thread(self, thread_id: str, message: ChatMessage) -> None:
        thread = self._threads.get(thread_id)
        if thread is None:
            logger.warning(f"Cannot add message {message.id}: unknown thread {thread_id}")
            return
        thread.messages.append(message)
        thread.add_participants([message.sender])
        thread.updated_at = time.time()
        self._thread_by_message[message.id] = thread_id

        if thread.thread_type == ThreadType.USER_INITIATED and not message.is_from_human:
            thread.thread_type = ThreadType.MIXED
        elif thread.thread_type == ThreadType.LLM_TO_LLM and message.is_from_human:
            thread.thread_type = ThreadType.MIXED

    def get_thread_for_message(self, message_id: str) -> Optional[ConversationThread]:
        thread_id = self._thread_by_message.get(message_id)
        return self._threads.get(thread_id) if thread_id else None

    def get_active_threads(self) -> List[ConversationThread]:
        return [thread for thread in self._threads.values() if thread.is_active]

    def get_thread(self, thread_id: str) -> Optional[ConversationThread]:
        return self._threads.get(thread_id)

    def close_thread(self, thread_id: str) -> None:
        thread = self._threads.get(thread_id)
        if thread is not None:
            thread.is_active = False
            thread.updated_at = time.time()
        self._contexts.pop(thread_id, None)
        self._thread_by_message = {
            message_id: owner for message_id, owner in self._thread_by_message.items() if owner != thread_id
        }

    # ---- discussion context ----

    def create_discussion_context(
        self,
        thread_id: str,
        conversation_history: Sequence[ChatMessage],
        participants: Sequence[Participant],
        discussion_topic: Optional[str] = None,
    ) -> DiscussionContext:
        """Start (or restart) the context for a thread; turn count starts at 0."""
        context = DiscussionContext(
            thread_id=thread_id,
            conversation_history=list(conversation_history),
            active_participants=list(participants),
            discussion_topic=discussion_topic,
            turn_count=0,
        )
        context.context_summary = summarize_discussion(
            context.conversation_history, context.active_participants, discussion_topic, 0
        )
        self._contexts[thread_id] = context
        return context

    def update_discussion_context(
        self,
        thread_id: str,
        new_message: ChatMessage,
        participants: Optional[Sequence[Participant]] = None,
    ) -> Optional[DiscussionContext]:
        """Append one message; bumps the turn count by exactly one."""
        context = self._contexts.get(thread_id)
        if context is None:
            return None
        context.conversation_history.append(new_message)
        context.turn_count += 1
        context.last_activity = time.time()
        if participants is not None:
            context.active_participants = list(participants)
        context.context_summary = summarize_discussion(
            context.conversation_history,
            context.active_participants,
            context.discussion_topic,
            context.turn_count,
        )
        return context

    def get_discussion_context(self, thread_id: str) -> Optional[DiscussionContext]:
        return self._contexts.get(thread_id)

    # ---- dispatch ----

    def build_routed_messages(
        self,
        routing: MessageRouting,
        message: ChatMessage,
        context: DiscussionContext,
        base_prompt: Optional[str] = None,
    ) -> List[RequestMessage]:
        system_prompt = build_llm_to_llm_system_prompt(routing, context, base_prompt)
        return [
            RequestMessage(role="system", content=system_prompt),
            *format_routed_messages(context.conversation_history, message),
        ]

    async def route_message(
        self,
        routing: MessageRouting,
        message: ChatMessage,
        context: DiscussionContext,
        send_fn: SendFn,
        base_prompt: Optional[str] = None,
    ) -> Dict[str, LLMResponse]:
        """
        Deliver ``message`` to every routing target concurrently.

        Args:
            routing: Routing decision for the message
            message: The message being delivered
            context: Discussion context of the message's thread
            send_fn: Coroutine sending one request to one participant id
            base_prompt: Extra system-prompt context

        Returns:
            Response per target id, in target order; failed deliveries map to
            an empty response whose ``metadata.error`` holds the failure
        """
        messages = self.build_routed_messages(routing, message, context, base_prompt)
        metadata = RequestMetadata(
            conversation_id=context.thread_id,
            message_id=message.id,
            participant_names=[p.display_name for p in context.active_participants],
        )

        async def deliver(target_id: str) -> LLMResponse:
            request = LLMRequest(messages=list(messages), metadata=metadata)
            try:
                return await send_fn(target_id, request)
            except Exception as e:
                logger.warning(f"Failed to route message {message.id} to {target_id}: {e}")
                return LLMResponse(
                    model_id=target_id,
                    metadata=ResponseMetadata(error=extract_error_message(e)),
                )

        target_ids = list(routing.target_ids)
        results = await asyncio.gather(*(deliver(target_id) for target_id in target_ids))
        return dict(zip(target_ids, results))
