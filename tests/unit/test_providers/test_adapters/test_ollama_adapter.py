"""Tests for the Ollama adapter: prompt flattening, generate API and NDJSON streaming."""

import json

import httpx
import pytest

from multi_llm_chat.providers.adapters import OllamaAdapter
from multi_llm_chat.providers.adapters.ollama_adapter import STOP_SEQUENCES, convert_messages_to_prompt
from multi_llm_chat.providers.errors import ModelNotFoundError, ProviderError
from multi_llm_chat.providers.types import LLMRequest, OllamaConfig, RequestMessage


def _config(**overrides):
    fields = dict(display_name="Llama", model_name="llama3", host="http://ollama.test:11434")
    fields.update(overrides)
    return OllamaConfig(**fields)


def _adapter(handler, config=None, **options):
    options.setdefault("retry_base_delay_ms", 0)
    return OllamaAdapter("llama", config or _config(), transport=httpx.MockTransport(handler), **options)


def _request(**fields):
    return LLMRequest(
        messages=[
            RequestMessage(role="system", content="You are terse."),
            RequestMessage(role="user", content="What is 2+2?"),
            RequestMessage(role="assistant", content="4", name="gpt"),
            RequestMessage(role="user", content="And 3+3?"),
        ],
        **fields,
    )


def test_convert_messages_to_prompt_builds_transcript():
    prompt, system = convert_messages_to_prompt(_request().messages)

    assert system == "You are terse."
    assert prompt == "Human: What is 2+2?\n\ngpt: 4\n\nHuman: And 3+3?\n\nAssistant: "


def test_build_payload_drops_unset_options():
    adapter = OllamaAdapter("llama", _config(num_ctx=4096, keep_alive="10m"))

    payload = adapter.build_payload(_request())

    assert payload["model"] == "llama3"
    assert payload["stream"] is False
    assert payload["system"] == "You are terse."
    assert payload["keep_alive"] == "10m"
    assert payload["options"]["num_ctx"] == 4096
    assert "num_gpu" not in payload["options"]
    assert payload["options"]["stop"] == STOP_SEQUENCES
    assert payload["options"]["temperature"] == 0.7


@pytest.mark.asyncio
async def test_send_request_uses_generate_endpoint_and_trims_reply():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"response": "  6  ", "done": True, "prompt_eval_count": 12, "eval_count": 3},
        )

    response = await _adapter(handler).send_request(_request())

    assert seen["path"] == "/api/generate"
    assert seen["body"]["prompt"].endswith("Assistant: ")
    assert response.content == "6"
    assert response.usage.prompt_tokens == 12
    assert response.usage.total_tokens == 15
    assert response.metadata.token_count == 3


@pytest.mark.asyncio
async def test_missing_model_maps_to_model_not_found():
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "model 'llama3' not found"})

    with pytest.raises(ModelNotFoundError):
        await _adapter(handler).send_request(_request())


@pytest.mark.asyncio
async def test_streaming_reads_ndjson_until_done():
    lines = [
        {"response": "Hel", "done": False},
        {"response": "lo", "done": False},
        {"response": "", "done": True, "prompt_eval_count": 4, "eval_count": 2},
    ]
    body = "\n".join(json.dumps(line) for line in lines) + "\n"

    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    chunks = [chunk async for chunk in _adapter(handler).stream(_request())]

    assert [c.content for c in chunks if c.content] == ["Hel", "lo"]
    assert chunks[-1].done is True
    assert chunks[-1].usage.completion_tokens == 2


@pytest.mark.asyncio
async def test_streaming_error_line_raises_stream_error():
    body = json.dumps({"response": "a"}) + "\n" + json.dumps({"error": "out of memory"}) + "\n"

    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    with pytest.raises(ProviderError) as exc_info:
        async for _ in _adapter(handler).stream(_request()):
            pass
    assert exc_info.value.code == "STREAM_ERROR"
    assert "out of memory" in str(exc_info.value)


@pytest.mark.asyncio
async def test_test_connection_requires_served_model():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": [{"name": "mistral"}, {"name": "phi3"}]})

    result = await _adapter(handler).test_connection()

    assert result.success is False
    assert result.available_models == ["mistral", "phi3"]
    assert result.error == "Model 'llama3' not found. Available models: mistral, phi3"


@pytest.mark.asyncio
async def test_health_check_records_last_result():
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"models": [{"name": "llama3"}]})

    adapter = _adapter(handler)
    result = await adapter.health_check()

    assert result.healthy is True
    assert adapter.get_last_health_check() is result


def test_validate_config_warns_on_odd_keep_alive():
    adapter = OllamaAdapter("llama", _config(keep_alive="forever", num_ctx=0))

    result = adapter.validate_config()

    assert result.is_valid is False
    assert "Context size (num_ctx) must be at least 1" in result.errors
    assert any("keep_alive" in warning for warning in result.warnings)
