"""Mention parsing, message routing, threads and discussion context."""

from .mentions import parse_mentions
from .prompts import build_llm_to_llm_system_prompt, build_multi_agent_system_prompt
from .system import LLMCommunicationSystem, summarize_discussion
from .types import (
    ConversationThread,
    DiscussionContext,
    MessageRouting,
    ParsedMention,
    RoutingType,
    ThreadType,
)

__all__ = [
    "parse_mentions",
    "build_llm_to_llm_system_prompt",
    "build_multi_agent_system_prompt",
    "LLMCommunicationSystem",
    "summarize_discussion",
    "ConversationThread",
    "DiscussionContext",
    "MessageRouting",
    "ParsedMention",
    "RoutingType",
    "ThreadType",
]
