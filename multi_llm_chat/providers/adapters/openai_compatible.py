"""
OpenAI-compatible chat-completions wire format.

Shared by the hosted API adapter and the LM Studio adapter: JSON request
bodies, ``choices[0].message`` replies and SSE streaming terminated by
``data: [DONE]``.
"""
import logging
from abc import abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

from ..base import BaseLLMAdapter
from ..errors import ProviderError
from ..types import (
    LLMRequest,
    LLMResponse,
    RequestMessage,
    ResponseMetadata,
    StreamChunk,
    TokenUsage,
    ToolCall,
)
from ..utils import parse_sse_line

logger = logging.getLogger(__name__)

MODEL_LIST_TIMEOUT_MS = 10000


def format_message(message: RequestMessage, index: int = 0) -> Dict[str, Any]:
    """Convert a RequestMessage to an OpenAI chat message dict."""
    formatted: Dict[str, Any] = {"role": message.role, "content": message.content}
    if message.name:
        formatted["name"] = message.name
    if message.tool_call_id:
        formatted["tool_call_id"] = message.tool_call_id
    if message.tool_calls:
        formatted["tool_calls"] = [
            call.to_openai(f"call_{index}_{n}") for n, call in enumerate(message.tool_calls)
        ]
    return formatted


def parse_tool_calls(raw_calls: Any) -> List[ToolCall]:
    calls: List[ToolCall] = []
    if not isinstance(raw_calls, list):
        return calls
    for raw in raw_calls:
        if not isinstance(raw, dict):
            continue
        function = raw.get("function") or {}
        name = function.get("name")
        if not name:
            continue
        arguments = function.get("arguments")
        if not isinstance(arguments, str):
            arguments = "{}" if arguments is None else str(arguments)
        calls.append(ToolCall(id=raw.get("id"), function_name=name, arguments_json=arguments))
    return calls


class OpenAICompatibleAdapter(BaseLLMAdapter):
    """Base for backends speaking /chat/completions."""

    # Extra stop sequences sent with every request, if any.
    _STOP_SEQUENCES: Optional[List[str]] = None

    @abstractmethod
    def _base_url(self) -> str:
        """URL prefix that /chat/completions and /models hang off."""

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _extend_payload(self, payload: Dict[str, Any], request: LLMRequest) -> None:
        """Add backend-specific fields to the request body."""

    def build_payload(self, request: LLMRequest, stream: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model_name,
            "messages": [format_message(m, i) for i, m in enumerate(request.messages)],
            "max_tokens": self.get_max_tokens(request),
            "temperature": self.get_temperature(request),
            "top_p": self.get_top_p(),
            "stream": stream,
        }
        if request.tools:
            payload["tools"] = request.tools
            payload["tool_choice"] = request.tool_choice or "auto"
        if self._STOP_SEQUENCES:
            payload["stop"] = list(self._STOP_SEQUENCES)
        self._extend_payload(payload, request)
        return payload

    def _parse_completion(self, data: Dict[str, Any]) -> LLMResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError("No choices in response", self.id, "INVALID_RESPONSE")
        choice = choices[0]
        message = choice.get("message") or {}
        usage = TokenUsage.from_dict(data.get("usage"))
        return LLMResponse(
            model_id=self.id,
            content=self._finalize_content(message.get("content") or ""),
            tool_calls=parse_tool_calls(message.get("tool_calls")),
            usage=usage,
            metadata=ResponseMetadata(
                token_count=usage.total_tokens if usage else None,
                finish_reason=choice.get("finish_reason"),
            ),
        )

    async def _send_once(self, request: LLMRequest) -> LLMResponse:
        url = f"{self._base_url()}/chat/completions"
        async with self._client() as client:
            response = await client.post(
                url, json=self.build_payload(request), headers=self._headers()
            )
            if response.status_code >= 400:
                raise await self._error_from_response(response)
            data = response.json()
        return self._parse_completion(data)

    async def _stream_once(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        url = f"{self._base_url()}/chat/completions"
        usage: Optional[TokenUsage] = None
        finish_reason: Optional[str] = None
        async with self._client() as client:
            async with client.stream(
                "POST", url, json=self.build_payload(request, stream=True), headers=self._headers()
            ) as response:
                if response.status_code >= 400:
                    raise await self._error_from_response(response)
                async for line in response.aiter_lines():
                    done, event = parse_sse_line(line)
                    if done:
                        break
                    if not isinstance(event, dict):
                        continue
                    if event.get("usage"):
                        usage = TokenUsage.from_dict(event["usage"])
                    choices = event.get("choices") or []
                    if not choices:
                        continue
                    delta = choices[0].get("delta") or {}
                    content = delta.get("content") or ""
                    if choices[0].get("finish_reason"):
                        finish_reason = choices[0]["finish_reason"]
                    if content:
                        yield StreamChunk(content=content)
        yield StreamChunk(done=True, finish_reason=finish_reason or "stop", usage=usage)

    async def _fetch_models(self) -> List[str]:
        async with self._client(MODEL_LIST_TIMEOUT_MS) as client:
            response = await client.get(f"{self._base_url()}/models", headers=self._headers())
            if response.status_code >= 400:
                raise await self._error_from_response(response, completions_endpoint=False)
            data = response.json()
        models = data.get("data") if isinstance(data, dict) else None
        return [m["id"] for m in models or [] if isinstance(m, dict) and m.get("id")]
