"""
Ollama Adapter

Adapter for a local Ollama server using the prompt-completion endpoint
(/api/generate) and NDJSON streaming.
"""
import json
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from ..base import BaseLLMAdapter
from ..errors import ProviderError
from ..types import (
    LLMRequest,
    LLMResponse,
    OllamaConfig,
    ProviderKind,
    RateLimitConfig,
    RequestMessage,
    ResponseMetadata,
    StreamChunk,
    TokenUsage,
)
from ..utils import is_valid_http_url

logger = logging.getLogger(__name__)

STOP_SEQUENCES = ["Human:", "User:", "\n\nHuman:", "\n\nUser:"]
KEEP_ALIVE_PATTERN = re.compile(r"^(-1|0|\d+[smh])$")
MODEL_LIST_TIMEOUT_MS = 10000


def convert_messages_to_prompt(messages: List[RequestMessage]) -> Tuple[str, Optional[str]]:
    """
    Flatten chat messages into a transcript prompt.

    Args:
        messages: Wire-neutral chat messages

    Returns:
        (prompt, system) where system is carried separately and the prompt
        ends with an open ``Assistant:`` turn
    """
    system_parts: List[str] = []
    prompt = ""
    for message in messages:
        if message.role == "system":
            system_parts.append(message.content)
        elif message.role == "user":
            prompt += f"Human: {message.content}\n\n"
        elif message.role == "assistant":
            prompt += f"{message.name or 'Assistant'}: {message.content}\n\n"
        elif message.role == "tool":
            prompt += f"Tool ({message.name or 'tool'}): {message.content}\n\n"
    prompt += "Assistant: "
    system = "\n\n".join(part for part in system_parts if part) or None
    return prompt, system


def _usage_from(data: Dict[str, Any]) -> Optional[TokenUsage]:
    prompt_tokens = data.get("prompt_eval_count")
    completion_tokens = data.get("eval_count")
    if prompt_tokens is None and completion_tokens is None:
        return None
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=(prompt_tokens or 0) + (completion_tokens or 0),
    )


class OllamaAdapter(BaseLLMAdapter):
    """Adapter for Ollama's native generate API."""

    kind = ProviderKind.OLLAMA
    config: OllamaConfig

    _DEFAULT_RATE_LIMIT = RateLimitConfig(requests_per_minute=60, tokens_per_minute=10000)
    _REQUIRE_SERVED_MODEL = True

    def _host(self) -> str:
        return self.config.host.rstrip("/")

    def build_payload(self, request: LLMRequest, stream: bool = False) -> Dict[str, Any]:
        prompt, system = convert_messages_to_prompt(request.messages)
        options = {
            "temperature": self.get_temperature(request),
            "top_p": self.get_top_p(),
            "num_ctx": self.config.num_ctx,
            "num_gpu": self.config.num_gpu,
            "stop": list(STOP_SEQUENCES),
        }
        payload: Dict[str, Any] = {
            "model": self.model_name,
            "prompt": prompt,
            "stream": stream,
            "options": {key: value for key, value in options.items() if value is not None},
            "keep_alive": self.config.keep_alive or "5m",
        }
        if system:
            payload["system"] = system
        return payload

    def _finalize_content(self, content: str) -> str:
        return content.strip()

    async def _send_once(self, request: LLMRequest) -> LLMResponse:
        async with self._client() as client:
            response = await client.post(
                f"{self._host()}/api/generate", json=self.build_payload(request)
            )
            if response.status_code >= 400:
                raise await self._error_from_response(response)
            data = response.json()

        if not isinstance(data, dict) or "response" not in data:
            raise ProviderError("Invalid response from Ollama", self.id, "INVALID_RESPONSE")
        usage = _usage_from(data)
        return LLMResponse(
            model_id=self.id,
            content=self._finalize_content(data.get("response") or ""),
            usage=usage,
            metadata=ResponseMetadata(
                token_count=data.get("eval_count"),
                finish_reason="stop" if data.get("done") else "length",
            ),
        )

    async def _stream_once(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        usage: Optional[TokenUsage] = None
        async with self._client() as client:
            async with client.stream(
                "POST", f"{self._host()}/api/generate", json=self.build_payload(request, stream=True)
            ) as response:
                if response.status_code >= 400:
                    raise await self._error_from_response(response)
                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning(f"[{self.id}] skipping malformed NDJSON line: {line[:200]}")
                        continue
                    if data.get("error"):
                        raise ProviderError(str(data["error"]), self.id, "STREAM_ERROR")
                    if data.get("response"):
                        yield StreamChunk(content=data["response"])
                    if data.get("done"):
                        usage = _usage_from(data)
                        break
        yield StreamChunk(done=True, finish_reason="stop", usage=usage)

    async def _fetch_models(self) -> List[str]:
        async with self._client(MODEL_LIST_TIMEOUT_MS) as client:
            response = await client.get(f"{self._host()}/api/tags")
            if response.status_code >= 400:
                raise await self._error_from_response(response, completions_endpoint=False)
            data = response.json()
        models = data.get("models") if isinstance(data, dict) else None
        return [m["name"] for m in models or [] if isinstance(m, dict) and m.get("name")]

    def _validate_specific(self, errors: List[str], warnings: List[str]) -> None:
        config = self.config
        if not is_valid_http_url(config.host):
            errors.append("Host must be a valid http(s) URL")
        if not config.model_name:
            errors.append("Model name is required")
        if config.num_ctx is not None and config.num_ctx < 1:
            errors.append("Context size (num_ctx) must be at least 1")
        if config.num_gpu is not None and config.num_gpu < 0:
            errors.append("num_gpu cannot be negative")
        if config.keep_alive and not KEEP_ALIVE_PATTERN.match(config.keep_alive):
            warnings.append("keep_alive should look like '5m', '1h', '0' or '-1'")
