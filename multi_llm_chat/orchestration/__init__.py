"""Multi-model orchestration: fan-out turns, lifecycle events and tool loops."""

from .events import (
    EventBroadcaster,
    LifecycleEvent,
    ModelAddedEvent,
    ModelErrorEvent,
    ModelPausedEvent,
    ModelRemovedEvent,
    ModelResumedEvent,
    normalize_lifecycle_event,
)
from .orchestrator import LLMOrchestrator
from .tool_loop import UNRESOLVED_TOOL_CALLS_MARKER, ToolLoopRunner
from .types import (
    ModelFailure,
    NoActiveModelsError,
    OrchestratorConfig,
    OrchestratorError,
    OrchestratorMetadata,
    OrchestratorResponse,
    ParticipantNotFoundError,
    PerformanceMetric,
    PerformanceRecorder,
    RoutedResponse,
)

__all__ = [
    "EventBroadcaster",
    "LifecycleEvent",
    "ModelAddedEvent",
    "ModelErrorEvent",
    "ModelPausedEvent",
    "ModelRemovedEvent",
    "ModelResumedEvent",
    "normalize_lifecycle_event",
    "LLMOrchestrator",
    "UNRESOLVED_TOOL_CALLS_MARKER",
    "ToolLoopRunner",
    "ModelFailure",
    "NoActiveModelsError",
    "OrchestratorConfig",
    "OrchestratorError",
    "OrchestratorMetadata",
    "OrchestratorResponse",
    "ParticipantNotFoundError",
    "PerformanceMetric",
    "PerformanceRecorder",
    "RoutedResponse",
]
