"""Orchestrator configuration, results and collaborator contracts."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from ..communication.types import MessageRouting
from ..providers.errors import ProviderError
from ..providers.types import LLMResponse


class OrchestratorConfig(BaseModel):
    """Tunables for one orchestrator instance; every field has a default."""

    max_concurrent_requests: int = Field(default=10, ge=1)
    request_timeout_ms: int = Field(default=30000, ge=1)
    retry_attempts: int = Field(default=3, ge=0)
    error_isolation: bool = Field(
        default=True,
        description="When False, a participant that fails is paused afterwards",
    )
    tool_call_max_iterations: int = Field(default=2, ge=0)


class OrchestratorError(Exception):
    """Base error for orchestrator-level failures."""


class NoActiveModelsError(OrchestratorError):
    def __init__(self, message: str = "No active models available"):
        super().__init__(message)


class ParticipantNotFoundError(OrchestratorError):
    def __init__(self, participant_id: str):
        super().__init__(f"Model with ID '{participant_id}' not found")
        self.participant_id = participant_id


@dataclass
class ModelFailure:
    """A participant's failed call within one turn."""

    model_id: str
    error: Exception

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__

    @property
    def code(self) -> Optional[str]:
        return self.error.code if isinstance(self.error, ProviderError) else None


@dataclass
class OrchestratorMetadata:
    total_processing_time_ms: float
    success_count: int
    failure_count: int


@dataclass
class OrchestratorResponse:
    """Aggregate of one fan-out turn: partial success is normal."""

    conversation_id: str
    message_id: str
    responses: List[LLMResponse] = field(default_factory=list)
    errors: List[ModelFailure] = field(default_factory=list)
    metadata: Optional[OrchestratorMetadata] = None


@dataclass
class RoutedResponse:
    responses: Dict[str, LLMResponse]
    routing: MessageRouting
    thread_id: str


class PerformanceMetric(BaseModel):
    """One per-model timing/token record handed to the performance sink."""
    model_config = ConfigDict(protected_namespaces=())

    id: str
    message_id: str
    model_id: str
    processing_time: float
    token_count: Optional[int] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    error: Optional[str] = None
    created_at: float = Field(default_factory=time.time)


class PerformanceRecorder(Protocol):
    """Write-only metrics sink; ``create`` may be sync or async."""

    def create(self, metric: PerformanceMetric) -> Any:
        ...
