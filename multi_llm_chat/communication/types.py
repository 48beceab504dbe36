"""Routing, thread and discussion-context models."""

import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import ChatMessage, Participant


class RoutingType(str, Enum):
    BROADCAST = "broadcast"
    TARGETED = "targeted"
    REPLY = "reply"


class ThreadType(str, Enum):
    USER_INITIATED = "user-initiated"
    LLM_TO_LLM = "llm-to-llm"
    MIXED = "mixed"


class ParsedMention(BaseModel):
    """One ``@Name`` token that resolved to a participant."""
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    display_name: str
    start_index: int
    end_index: int
    full_mention: str


class MessageRouting(BaseModel):
    """Delivery decision for one message; computed fresh, never stored."""
    message_id: str
    sender_id: str
    routing_type: RoutingType
    target_ids: List[str] = Field(default_factory=list)
    is_direct_message: bool = False
    mentioned_models: List[ParsedMention] = Field(default_factory=list)


class ConversationThread(BaseModel):
    id: str
    participant_ids: List[str] = Field(default_factory=list)
    thread_type: ThreadType
    messages: List[ChatMessage] = Field(default_factory=list)
    parent_message_id: Optional[str] = None
    is_active: bool = True
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    def add_participants(self, participant_ids: List[str]) -> None:
        for participant_id in participant_ids:
            if participant_id not in self.participant_ids:
                self.participant_ids.append(participant_id)


class DiscussionContext(BaseModel):
    """Rolling per-thread state used to build prompts."""
    thread_id: str
    conversation_history: List[ChatMessage] = Field(default_factory=list)
    active_participants: List[Participant] = Field(default_factory=list)
    discussion_topic: Optional[str] = None
    turn_count: int = 0
    context_summary: str = ""
    last_activity: float = Field(default_factory=time.time)
