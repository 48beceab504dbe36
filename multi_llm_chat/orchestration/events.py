"""Participant lifecycle events and their broadcaster."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict

from ..models import Participant
from ..providers.utils import call_maybe_async

logger = logging.getLogger(__name__)


class _EventBase(BaseModel):
    """Common base for all lifecycle events."""

    model_config = ConfigDict(extra="allow")
    type: str


class ModelAddedEvent(_EventBase):
    type: str = "model_added"
    participant_id: str
    participant: Participant


class ModelRemovedEvent(_EventBase):
    type: str = "model_removed"
    participant_id: str


class ModelPausedEvent(_EventBase):
    type: str = "model_paused"
    participant_id: str


class ModelResumedEvent(_EventBase):
    type: str = "model_resumed"
    participant_id: str


class ModelErrorEvent(_EventBase):
    type: str = "model_error"
    participant_id: str
    error: str
    error_code: Optional[str] = None


LifecycleEvent = Union[
    ModelAddedEvent,
    ModelRemovedEvent,
    ModelPausedEvent,
    ModelResumedEvent,
    ModelErrorEvent,
]


_EVENT_MODEL_BY_TYPE: Dict[str, Type[_EventBase]] = {
    "model_added": ModelAddedEvent,
    "model_removed": ModelRemovedEvent,
    "model_paused": ModelPausedEvent,
    "model_resumed": ModelResumedEvent,
    "model_error": ModelErrorEvent,
}


def normalize_lifecycle_event(event: Union[_EventBase, Mapping[str, Any]]) -> _EventBase:
    """Validate a raw mapping (or pass through a model) as a lifecycle event."""
    if isinstance(event, _EventBase):
        return event

    payload = dict(event)
    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise ValueError("lifecycle event must include non-empty string field 'type'")

    model_cls = _EVENT_MODEL_BY_TYPE.get(event_type)
    if model_cls is None:
        raise ValueError(f"unsupported lifecycle event type: {event_type}")
    return model_cls.model_validate(payload)


EventListener = Callable[[LifecycleEvent], Union[None, Awaitable[None]]]


class EventBroadcaster:
    """
    Delivers each event to every subscriber.

    A subscriber that raises is logged and skipped; neither the emitter nor
    the other subscribers see the failure.
    """

    def __init__(self) -> None:
        self._listeners: List[EventListener] = []

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def emit(self, event: Union[_EventBase, Mapping[str, Any]]) -> None:
        normalized = normalize_lifecycle_event(event)
        for listener in list(self._listeners):
            try:
                await call_maybe_async(listener, normalized)
            except Exception:
                logger.exception(f"Lifecycle listener failed on {normalized.type} event")
