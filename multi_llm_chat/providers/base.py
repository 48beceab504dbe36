"""
Base LLM Adapter

Abstract base class for backend adapters. Owns the parts of the contract
that do not depend on the wire format: config validation, rate limiting,
retry/backoff, error classification, health checks and the callback form
of streaming.
"""
import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, TypeVar

import httpx

from .errors import (
    NetworkError,
    ProviderError,
    ProviderTimeoutError,
    create_error_from_response,
)
from .rate_limit import RateLimiter
from .types import (
    ConnectionTestResult,
    HealthCheckResult,
    LLMRequest,
    LLMResponse,
    ProviderKind,
    RateLimitConfig,
    ResponseMetadata,
    StreamChunk,
    TokenUsage,
    ValidationResult,
)
from .utils import (
    call_maybe_async,
    estimate_token_count,
    extract_error_message,
    retry_with_backoff,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_MS = 30000
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 1.0

ChunkCallback = Callable[[str], Any]
CompleteCallback = Callable[[LLMResponse], Any]
ErrorCallback = Callable[[ProviderError], Any]


class BaseLLMAdapter(ABC):
    """
    Abstract base class for backend adapters.

    Subclasses implement one attempt of a call (``_send_once``), the raw
    stream (``_stream_once``) and model listing. Everything that wraps an
    attempt lives here.
    """

    kind: ProviderKind

    # Applied when the config does not carry its own ceilings.
    _DEFAULT_RATE_LIMIT = RateLimitConfig()

    # Whether test_connection fails when the configured model is not listed.
    _REQUIRE_SERVED_MODEL = False

    def __init__(
        self,
        adapter_id: str,
        config: Any,
        *,
        max_retries: int = 3,
        retry_base_delay_ms: int = 1000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.id = adapter_id
        self.config = config
        self.max_retries = max_retries
        self.retry_base_delay_ms = retry_base_delay_ms
        self._transport = transport
        self._sleep = sleep
        self.rate_limiter = RateLimiter(adapter_id, self.get_rate_limit_config(), clock)
        self.last_health_check: Optional[HealthCheckResult] = None

    # ---- config accessors ----

    @property
    def name(self) -> str:
        return self.config.display_name

    @property
    def model_name(self) -> str:
        return self.config.model_name

    @property
    def timeout_ms(self) -> int:
        return self.config.timeout_ms or DEFAULT_TIMEOUT_MS

    def get_max_tokens(self, request: Optional[LLMRequest] = None) -> int:
        if request is not None and request.max_tokens is not None:
            return request.max_tokens
        return self.config.max_tokens or DEFAULT_MAX_TOKENS

    def get_temperature(self, request: Optional[LLMRequest] = None) -> float:
        if request is not None and request.temperature is not None:
            return request.temperature
        if self.config.temperature is not None:
            return self.config.temperature
        return DEFAULT_TEMPERATURE

    def get_top_p(self) -> float:
        return self.config.top_p if self.config.top_p is not None else DEFAULT_TOP_P

    def get_rate_limit_config(self) -> RateLimitConfig:
        return self._DEFAULT_RATE_LIMIT

    def _client(self, timeout_ms: Optional[float] = None) -> httpx.AsyncClient:
        timeout = (timeout_ms or self.timeout_ms) / 1000
        return httpx.AsyncClient(transport=self._transport, timeout=timeout)

    # ---- wire-specific hooks ----

    @abstractmethod
    async def _send_once(self, request: LLMRequest) -> LLMResponse:
        """
        Perform one non-streaming attempt.

        Args:
            request: Normalized request

        Returns:
            LLMResponse without processing time filled in
        """

    @abstractmethod
    def _stream_once(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        """
        Open the backend stream and yield normalized chunks.

        Args:
            request: Normalized request

        Yields:
            StreamChunk objects; the last one has ``done=True``
        """

    @abstractmethod
    async def _fetch_models(self) -> List[str]:
        """Fetch the raw model list from the backend."""

    def _validate_specific(self, errors: List[str], warnings: List[str]) -> None:
        """Append kind-specific validation findings."""

    # ---- shared behavior ----

    def validate_config(self) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        config = self.config

        if not (config.display_name or "").strip():
            errors.append("Display name is required")
        if config.max_tokens is not None and config.max_tokens < 1:
            errors.append("Max tokens must be at least 1")
        if config.temperature is not None and not 0 <= config.temperature <= 2:
            errors.append("Temperature must be between 0 and 2")
        if config.top_p is not None and not 0 <= config.top_p <= 1:
            errors.append("Top P must be between 0 and 1")
        if config.timeout_ms is not None and config.timeout_ms < 1000:
            warnings.append("Timeout below 1000ms may cause requests to fail")

        self._validate_specific(errors, warnings)
        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def estimate_request_tokens(self, request: LLMRequest) -> int:
        text = "".join(message.content or "" for message in request.messages)
        return estimate_token_count(text)

    async def check_rate_limit(self, request: LLMRequest) -> None:
        await self.rate_limiter.acquire(self.estimate_request_tokens(request))

    async def execute_with_retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        return await retry_with_backoff(
            fn,
            self.max_retries,
            self.retry_base_delay_ms,
            provider_id=self.id,
            sleep=self._sleep,
        )

    def classify_error(self, error: BaseException) -> ProviderError:
        """Translate transport/decoding failures into the typed taxonomy."""
        if isinstance(error, ProviderError):
            return error
        if isinstance(error, httpx.TimeoutException):
            return ProviderTimeoutError(self.id, self.timeout_ms)
        if isinstance(error, (httpx.TransportError, OSError)):
            return NetworkError(self.id, f"Network error: {extract_error_message(error)}")
        if isinstance(error, (json.JSONDecodeError, KeyError, TypeError, ValueError)):
            return ProviderError(
                f"Invalid response from backend: {extract_error_message(error)}",
                self.id,
                "INVALID_RESPONSE",
            )
        return ProviderError(extract_error_message(error), self.id, "UNKNOWN_ERROR")

    async def _attempt(self, request: LLMRequest) -> LLMResponse:
        try:
            return await self._send_once(request)
        except Exception as e:
            raise self.classify_error(e) from e

    async def send_request(self, request: LLMRequest) -> LLMResponse:
        """
        Send a non-streaming request.

        Rate limiting is checked once before any attempt; retryable failures
        are retried with backoff.

        Args:
            request: Normalized request

        Returns:
            Normalized LLMResponse
        """
        await self.check_rate_limit(request)
        started = time.perf_counter()
        response = await self.execute_with_retry(lambda: self._attempt(request))
        response.metadata.processing_time_ms = (time.perf_counter() - started) * 1000
        return response

    async def stream(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        """Rate-limited stream of normalized chunks. Not retried."""
        await self.check_rate_limit(request)
        try:
            async for chunk in self._stream_once(request):
                yield chunk
        except Exception as e:
            raise self.classify_error(e) from e

    async def send_streaming_request(
        self,
        request: LLMRequest,
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> Optional[LLMResponse]:
        """
        Callback form of ``stream``.

        Callbacks may be plain functions or coroutine functions. Failures are
        reported through ``on_error`` instead of being raised.

        Returns:
            The completed response, or None when the stream failed
        """
        started = time.perf_counter()
        parts: List[str] = []
        usage: Optional[TokenUsage] = None
        finish_reason: Optional[str] = None
        try:
            async for chunk in self.stream(request):
                if chunk.content:
                    parts.append(chunk.content)
                    await call_maybe_async(on_chunk, chunk.content)
                if chunk.usage is not None:
                    usage = chunk.usage
                if chunk.finish_reason:
                    finish_reason = chunk.finish_reason
        except Exception as e:
            error = self.classify_error(e)
            logger.warning(f"[{self.id}] stream failed: {error.message}")
            await call_maybe_async(on_error, error)
            return None

        response = LLMResponse(
            model_id=self.id,
            content=self._finalize_content("".join(parts)),
            usage=usage,
            metadata=ResponseMetadata(
                processing_time_ms=(time.perf_counter() - started) * 1000,
                token_count=usage.completion_tokens if usage else None,
                finish_reason=finish_reason or "stop",
            ),
        )
        await call_maybe_async(on_complete, response)
        return response

    def _finalize_content(self, content: str) -> str:
        return content

    async def _error_from_response(
        self,
        response: httpx.Response,
        *,
        completions_endpoint: bool = True,
    ) -> ProviderError:
        body = await response.aread()
        payload: Any
        try:
            payload = json.loads(body) if body else None
        except ValueError:
            payload = body.decode("utf-8", errors="replace")
        return create_error_from_response(
            self.id,
            response.status_code,
            payload,
            model_name=self.model_name,
            completions_endpoint=completions_endpoint,
            retry_after_header=response.headers.get("retry-after"),
        )

    async def get_available_models(self) -> List[str]:
        """List model identifiers the backend currently serves."""
        try:
            return await self._fetch_models()
        except Exception as e:
            raise self.classify_error(e) from e

    async def test_connection(self) -> ConnectionTestResult:
        """
        Check that the backend answers its model listing.

        Local servers additionally require the configured model to be served.
        """
        started = time.perf_counter()
        try:
            models = await self.get_available_models()
        except Exception as e:
            return ConnectionTestResult(
                success=False,
                latency_ms=(time.perf_counter() - started) * 1000,
                error=extract_error_message(e),
            )
        latency_ms = (time.perf_counter() - started) * 1000
        if self._REQUIRE_SERVED_MODEL and self.model_name not in models:
            return ConnectionTestResult(
                success=False,
                latency_ms=latency_ms,
                available_models=models,
                error=f"Model '{self.model_name}' not found. Available models: {', '.join(models)}",
            )
        return ConnectionTestResult(success=True, latency_ms=latency_ms, available_models=models)

    async def health_check(self) -> HealthCheckResult:
        started = time.perf_counter()
        try:
            result = await self.test_connection()
        except Exception as e:
            result = ConnectionTestResult(
                success=False,
                latency_ms=(time.perf_counter() - started) * 1000,
                error=extract_error_message(e),
            )
        self.last_health_check = HealthCheckResult(
            healthy=result.success,
            latency_ms=result.latency_ms,
            error=result.error,
            last_checked=time.time(),
        )
        return self.last_health_check

    def get_last_health_check(self) -> Optional[HealthCheckResult]:
        return self.last_health_check

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, model={self.model_name!r})"
