"""Tests for routed (mention / reply aware) delivery through the orchestrator."""

import pytest
import pytest_asyncio

from multi_llm_chat.communication import RoutingType, ThreadType
from multi_llm_chat.models import Participant
from multi_llm_chat.orchestration import LLMOrchestrator, NoActiveModelsError
from multi_llm_chat.providers.errors import NetworkError


async def _join(orchestrator, adapter):
    participant = Participant(
        id=adapter.id,
        display_name=adapter.name,
        provider=adapter.kind,
        model_name=adapter.model_name,
    )
    return await orchestrator.register_participant(participant, adapter)


@pytest_asyncio.fixture
async def orchestrator(make_adapter):
    orchestrator = LLMOrchestrator()
    await _join(orchestrator, make_adapter("gpt", lambda r: "gpt here", display_name="GPT"))
    await _join(orchestrator, make_adapter("claude", lambda r: "claude here", display_name="Claude"))
    return orchestrator


@pytest.mark.asyncio
async def test_mention_routes_only_to_mentioned_model(orchestrator, make_message):
    message = make_message("@Claude what do you think?")

    routed = await orchestrator.send_message_with_routing(message, [])

    assert routed.routing.routing_type == RoutingType.TARGETED
    assert list(routed.responses) == ["claude"]
    assert routed.responses["claude"].content == "claude here"
    thread = orchestrator.get_thread(routed.thread_id)
    assert thread.thread_type == ThreadType.USER_INITIATED
    assert thread.messages[0].id == message.id
    assert orchestrator.get_discussion_context(routed.thread_id).turn_count == 1


@pytest.mark.asyncio
async def test_broadcast_reaches_every_active_model(orchestrator, make_message):
    routed = await orchestrator.send_message_with_routing(make_message("hello everyone"), [])

    assert routed.routing.routing_type == RoutingType.BROADCAST
    assert set(routed.responses) == {"gpt", "claude"}


@pytest.mark.asyncio
async def test_handle_llm_response_builds_reply_and_extends_thread(orchestrator, make_message):
    message = make_message("@GPT hi")
    routed = await orchestrator.send_message_with_routing(message, [])

    reply = await orchestrator.handle_llm_response(routed.responses["gpt"], routed.thread_id, message)

    assert reply.id.startswith("msg_")
    assert reply.sender == "gpt"
    assert reply.reply_to == message.id
    assert reply.content == "gpt here"
    assert reply.metadata["provider"] == "api"
    thread = orchestrator.get_thread(routed.thread_id)
    assert [m.id for m in thread.messages] == [message.id, reply.id]
    assert thread.thread_type == ThreadType.MIXED
    context = orchestrator.get_discussion_context(routed.thread_id)
    assert context.turn_count == 2
    assert context.conversation_history[-1].id == reply.id


@pytest.mark.asyncio
async def test_reply_to_model_message_continues_its_thread(orchestrator, make_message):
    question = make_message("@GPT explain")
    routed = await orchestrator.send_message_with_routing(question, [])
    answer = await orchestrator.handle_llm_response(routed.responses["gpt"], routed.thread_id, question)

    follow_up = make_message("why?", reply_to=answer.id)
    second = await orchestrator.send_message_with_routing(follow_up, [question, answer], reply_to=answer)

    assert second.thread_id == routed.thread_id
    assert second.routing.routing_type == RoutingType.REPLY
    assert list(second.responses) == ["gpt"]
    assert orchestrator.get_discussion_context(routed.thread_id).turn_count == 3


@pytest.mark.asyncio
async def test_existing_history_seeds_context_without_double_counting(orchestrator, make_message):
    earlier = make_message("earlier")
    message = make_message("now")

    routed = await orchestrator.send_message_with_routing(message, [earlier, message])

    context = orchestrator.get_discussion_context(routed.thread_id)
    assert [m.id for m in context.conversation_history] == [earlier.id, message.id]
    assert context.turn_count == 0


@pytest.mark.asyncio
async def test_reply_to_paused_model_yields_error_response(orchestrator, make_message):
    await orchestrator.pause_model("gpt")
    original = make_message("old answer", sender="gpt")

    routed = await orchestrator.send_message_with_routing(make_message("still there?"), [original], reply_to=original)

    assert routed.responses["gpt"].content == ""
    assert routed.responses["gpt"].metadata.error == "Model with ID 'gpt' not found"


@pytest.mark.asyncio
async def test_failed_target_emits_model_error(make_adapter, make_message):
    def broken(_request):
        raise NetworkError("gpt", "backend down")

    orchestrator = LLMOrchestrator()
    events = []
    orchestrator.subscribe(events.append)
    await _join(orchestrator, make_adapter("gpt", broken, display_name="GPT"))

    routed = await orchestrator.send_message_with_routing(make_message("@GPT ping"), [])

    assert routed.responses["gpt"].metadata.error == "backend down"
    assert events[-1].type == "model_error"
    assert events[-1].participant_id == "gpt"


@pytest.mark.asyncio
async def test_streaming_routed_message(orchestrator, make_message):
    chunks = []

    routed = await orchestrator.send_streaming_message_with_routing(
        make_message("@Claude stream please"),
        [],
        on_chunk=lambda model_id, chunk: chunks.append((model_id, chunk)),
    )

    assert list(routed.responses) == ["claude"]
    assert routed.responses["claude"].content == "claude here"
    assert chunks == [("claude", "claude"), ("claude", " here")]


@pytest.mark.asyncio
async def test_thread_management_and_mentions(orchestrator, make_message):
    routed = await orchestrator.send_message_with_routing(make_message("hi"), [])

    assert [t.id for t in orchestrator.get_active_threads()] == [routed.thread_id]
    orchestrator.close_thread(routed.thread_id)
    assert orchestrator.get_active_threads() == []
    assert [m.model_id for m in orchestrator.parse_mentions("@gpt and @CLAUDE")] == ["gpt", "claude"]


@pytest.mark.asyncio
async def test_routing_with_every_model_paused_raises(orchestrator, make_message):
    await orchestrator.pause_model("gpt")
    await orchestrator.pause_model("claude")

    with pytest.raises(NoActiveModelsError):
        await orchestrator.send_message_with_routing(make_message("anyone?"), [])
    with pytest.raises(NoActiveModelsError):
        await orchestrator.send_streaming_message_with_routing(make_message("anyone?"), [])
    assert orchestrator.get_active_threads() == []


@pytest.mark.asyncio
async def test_mentions_of_paused_models_are_not_reported(orchestrator, make_message):
    await orchestrator.pause_model("gpt")

    assert [m.model_id for m in orchestrator.parse_mentions("@GPT and @Claude")] == ["claude"]

    routed = await orchestrator.send_message_with_routing(make_message("@GPT only you"), [])
    assert routed.routing.routing_type == RoutingType.BROADCAST
    assert list(routed.responses) == ["claude"]
