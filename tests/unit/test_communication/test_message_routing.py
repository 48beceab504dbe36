"""Tests for routing decisions, threads and discussion context."""

import pytest

from multi_llm_chat.communication import LLMCommunicationSystem, RoutingType, ThreadType
from multi_llm_chat.communication.system import summarize_discussion
from multi_llm_chat.providers.errors import NetworkError
from multi_llm_chat.providers.types import LLMResponse


def _system():
    counter = iter(range(1, 100))
    return LLMCommunicationSystem(thread_id_factory=lambda: f"thread_{next(counter)}")


@pytest.fixture
def participants(make_participant):
    return [
        make_participant("gpt", "GPT"),
        make_participant("claude", "Claude"),
        make_participant("llama", "Llama", is_active=False),
    ]


def test_plain_message_broadcasts_to_active_participants(participants, make_message):
    routing = _system().create_message_routing(make_message("hello all"), participants)

    assert routing.routing_type == RoutingType.BROADCAST
    assert routing.target_ids == ["gpt", "claude"]
    assert routing.is_direct_message is False


def test_mentions_target_only_mentioned_models(participants, make_message):
    routing = _system().create_message_routing(make_message("@Claude and @claude, thoughts?"), participants)

    assert routing.routing_type == RoutingType.TARGETED
    assert routing.target_ids == ["claude"]
    assert routing.is_direct_message is True
    assert len(routing.mentioned_models) == 2


def test_reply_goes_back_to_replied_author(participants, make_message):
    original = make_message("my take", sender="gpt")
    reply = make_message("why?", reply_to=original.id)

    routing = _system().create_message_routing(reply, participants, original)

    assert routing.routing_type == RoutingType.REPLY
    assert routing.target_ids == ["gpt"]


def test_reply_with_mentions_prefers_mentions(participants, make_message):
    original = make_message("my take", sender="gpt")
    reply = make_message("@Claude do you agree?")

    routing = _system().create_message_routing(reply, participants, original)

    assert routing.routing_type == RoutingType.REPLY
    assert routing.target_ids == ["claude"]


def test_reply_to_own_message_targets_everyone_else(participants, make_message):
    original = make_message("first", sender="gpt")
    follow_up = make_message("adding to that", sender="gpt")

    routing = _system().create_message_routing(follow_up, participants, original)

    assert routing.target_ids == ["claude"]


def test_replies_reuse_the_thread_of_the_replied_message():
    system = _system()

    first = system.create_or_update_thread("m1", "user", ["gpt"])
    second = system.create_or_update_thread("m2", "gpt", ["user"], reply_to_message_id="m1")
    unrelated = system.create_or_update_thread("m3", "user", ["claude"])

    assert first == second == "thread_1"
    assert unrelated == "thread_2"
    thread = system.get_thread(first)
    assert thread.participant_ids == ["user", "gpt"]
    assert thread.thread_type == ThreadType.MIXED
    assert system.get_thread_for_message("m2").id == first


def test_model_started_thread_becomes_mixed_when_human_joins(make_message):
    system = _system()
    thread_id = system.create_or_update_thread("m1", "gpt", ["claude"])
    assert system.get_thread(thread_id).thread_type == ThreadType.LLM_TO_LLM

    system.add_message_to_thread(thread_id, make_message("let me jump in"))

    assert system.get_thread(thread_id).thread_type == ThreadType.MIXED


def test_close_thread_deactivates_and_drops_context(participants):
    system = _system()
    thread_id = system.create_or_update_thread("m1", "user", ["gpt"])
    system.create_discussion_context(thread_id, [], participants)

    system.close_thread(thread_id)

    assert system.get_active_threads() == []
    assert system.get_discussion_context(thread_id) is None
    assert system.get_thread_for_message("m1") is None
    assert system.create_or_update_thread("m2", "user", ["gpt"], reply_to_message_id="m1") != thread_id


def test_discussion_context_counts_turns(participants, make_message):
    system = _system()
    history = [make_message("earlier")]

    context = system.create_discussion_context("t1", history, participants, "databases")
    assert context.turn_count == 0
    assert context.context_summary.startswith("Discussion between User about databases")

    system.update_discussion_context("t1", make_message("next", sender="gpt"))
    updated = system.update_discussion_context("t1", make_message("and then", sender="claude"))

    assert updated.turn_count == 2
    assert len(updated.conversation_history) == 3
    assert "GPT" in updated.context_summary and "Claude" in updated.context_summary
    assert len(history) == 1


def test_update_unknown_context_returns_none(make_message):
    assert _system().update_discussion_context("missing", make_message("x")) is None


def test_summary_for_empty_history():
    assert summarize_discussion([]) == "New discussion"
    assert summarize_discussion([], topic="ranking") == "ranking"


@pytest.mark.asyncio
async def test_route_message_delivers_to_targets_and_isolates_failures(participants, make_message):
    system = _system()
    message = make_message("hello")
    routing = system.create_message_routing(message, participants)
    context = system.create_discussion_context("t1", [message], participants)
    seen = {}

    async def send(target_id, request):
        seen[target_id] = request
        if target_id == "claude":
            raise NetworkError(target_id, "backend down")
        return LLMResponse(model_id=target_id, content=f"hi from {target_id}")

    responses = await system.route_message(routing, message, context, send, base_prompt="Be kind.")

    assert list(responses) == ["gpt", "claude"]
    assert responses["gpt"].content == "hi from gpt"
    assert responses["claude"].content == ""
    assert responses["claude"].metadata.error == "backend down"

    request = seen["gpt"]
    assert request.messages[0].role == "system"
    assert "Additional context: Be kind." in request.messages[0].content
    assert "addressed to every participant" in request.messages[0].content
    assert [m.content for m in request.messages[1:]] == ["hello"]
    assert request.metadata.message_id == message.id
