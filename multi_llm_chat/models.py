"""
Conversation Models

Chat messages as exchanged between the human and the models, and the
participants that represent models in a conversation.
"""
import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .providers.types import ProviderKind

HUMAN_SENDER = "user"
DEFAULT_PARTICIPANT_COLOR = "#007acc"


class ChatMessage(BaseModel):
    """A message in a conversation; ``sender`` is "user" or a participant id."""
    id: str
    content: str
    sender: str
    timestamp: float = Field(default_factory=time.time)
    reply_to: Optional[str] = Field(default=None, description="Id of the message replied to")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_from_human(self) -> bool:
        return self.sender == HUMAN_SENDER


class Participant(BaseModel):
    """A model taking part in conversations; its adapter is registered under ``id``."""
    model_config = ConfigDict(protected_namespaces=())

    id: str
    display_name: str
    provider: ProviderKind
    model_name: str
    color: str = DEFAULT_PARTICIPANT_COLOR
    is_active: bool = True
    added_at: float = Field(default_factory=time.time)
