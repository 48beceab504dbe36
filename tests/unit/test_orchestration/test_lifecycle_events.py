"""Unit tests for lifecycle event validation and broadcasting."""

import pytest

from multi_llm_chat.orchestration.events import (
    EventBroadcaster,
    ModelErrorEvent,
    ModelPausedEvent,
    normalize_lifecycle_event,
)


def test_normalize_event_accepts_known_event_type():
    event = normalize_lifecycle_event({"type": "model_error", "participant_id": "gpt", "error": "boom"})

    assert isinstance(event, ModelErrorEvent)
    assert event.participant_id == "gpt"
    assert event.error_code is None


def test_normalize_event_rejects_unknown_type():
    with pytest.raises(ValueError, match="unsupported lifecycle event type"):
        normalize_lifecycle_event({"type": "model_exploded", "participant_id": "gpt"})


def test_normalize_event_rejects_missing_required_fields():
    with pytest.raises(Exception):
        normalize_lifecycle_event({"type": "model_error", "participant_id": "gpt"})


def test_normalize_event_keeps_extra_fields():
    event = normalize_lifecycle_event({"type": "model_paused", "participant_id": "gpt", "reason": "manual"})

    assert event.reason == "manual"


@pytest.mark.asyncio
async def test_broadcaster_survives_failing_listener_and_supports_unsubscribe():
    broadcaster = EventBroadcaster()
    received = []

    def failing(_event):
        raise RuntimeError("nope")

    broadcaster.subscribe(failing)
    unsubscribe = broadcaster.subscribe(received.append)

    await broadcaster.emit(ModelPausedEvent(participant_id="gpt"))
    unsubscribe()
    await broadcaster.emit(ModelPausedEvent(participant_id="claude"))

    assert [e.participant_id for e in received] == ["gpt"]
    assert broadcaster.listener_count == 1
