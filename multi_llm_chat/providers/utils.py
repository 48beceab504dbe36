"""
Provider Utilities

Retry/backoff, timeouts, SSE parsing and small validation helpers used by
the adapters.
"""
import asyncio
import errno
import inspect
import json
import logging
import math
import re
import socket
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar
from urllib.parse import urlparse

import httpx

from .errors import RETRYABLE_STATUS_CODES, ProviderError, ProviderTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_BACKOFF_DELAY_MS = 30000
SSE_DONE_SENTINEL = "[DONE]"

_RETRYABLE_ERRNOS = frozenset({errno.ECONNRESET, errno.ECONNREFUSED, errno.ETIMEDOUT})
_RETRYABLE_ERROR_CODES = frozenset({"ECONNRESET", "ENOTFOUND", "ECONNREFUSED", "ETIMEDOUT"})

_API_KEY_PATTERNS = {
    "openai": re.compile(r"^sk-[a-zA-Z0-9]{48,}$"),
    "anthropic": re.compile(r"^sk-ant-[a-zA-Z0-9-]{95,}$"),
}


def calculate_backoff_delay(attempt: int, base_delay: int = 1000) -> int:
    """Delay in ms before retry number ``attempt`` (1-based), capped at 30s."""
    return min(base_delay * (2 ** (attempt - 1)), MAX_BACKOFF_DELAY_MS)


def is_retryable_error(error: BaseException) -> bool:
    """Whether a failure is worth another attempt."""
    if isinstance(error, ProviderError):
        return error.retryable
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError)):
        return True

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int) and status_code in RETRYABLE_STATUS_CODES:
        return True

    if isinstance(error, socket.gaierror):
        return True
    if isinstance(error, OSError) and error.errno in _RETRYABLE_ERRNOS:
        return True

    code = getattr(error, "code", None)
    return isinstance(code, str) and code in _RETRYABLE_ERROR_CODES


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: int = 1000,
    *,
    provider_id: str = "unknown",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run ``fn`` with exponential backoff on retryable failures.

    Args:
        fn: Zero-argument coroutine factory performing one attempt
        max_retries: Retries after the first attempt
        base_delay: Base delay in milliseconds
        provider_id: Used for log context only
        sleep: Sleep coroutine, injectable for tests

    Returns:
        The first successful result

    Raises:
        The first non-retryable error, or the last error once attempts run out
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except Exception as e:
            if not is_retryable_error(e) or attempt > max_retries:
                raise
            delay_ms = calculate_backoff_delay(attempt, base_delay)
            logger.warning(
                f"[{provider_id}] attempt {attempt}/{max_retries + 1} failed "
                f"({type(e).__name__}: {e}); retrying in {delay_ms}ms"
            )
            await sleep(delay_ms / 1000)


async def with_timeout(awaitable: Awaitable[T], timeout_ms: float, provider_id: str) -> T:
    """Await ``awaitable`` or raise ProviderTimeoutError after ``timeout_ms``."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise ProviderTimeoutError(provider_id, timeout_ms) from e


def estimate_token_count(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text or "") / 4)


def parse_sse_line(line: str) -> Tuple[bool, Optional[Any]]:
    """
    Parse one SSE line.

    Returns:
        (done, payload) where done is True on ``data: [DONE]`` and payload is the
        decoded JSON object, or None for comments, blanks and malformed events
    """
    line = line.strip()
    if not line.startswith("data:"):
        return False, None
    data = line[len("data:"):].strip()
    if data == SSE_DONE_SENTINEL:
        return True, None
    if not data:
        return False, None
    try:
        return False, json.loads(data)
    except json.JSONDecodeError:
        logger.warning(f"Skipping malformed SSE event: {data[:200]}")
        return False, None


def parse_sse_data(text: str) -> List[Any]:
    """Decode every JSON event in an SSE body, stopping at ``[DONE]``."""
    events = []
    for line in text.splitlines():
        done, payload = parse_sse_line(line)
        if done:
            break
        if payload is not None:
            events.append(payload)
    return events


def validate_api_key(api_key: str, provider: str = "generic") -> bool:
    """Loose format check; unknown providers only need 20+ characters."""
    if not api_key:
        return False
    pattern = _API_KEY_PATTERNS.get(provider.lower())
    if pattern is not None:
        return bool(pattern.match(api_key))
    return len(api_key) >= 20


def sanitize_url(url: str) -> str:
    """Strip whitespace and trailing slashes; raise ValueError if not http(s)."""
    cleaned = (url or "").strip().rstrip("/")
    parsed = urlparse(cleaned)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid URL: {url!r}")
    return cleaned


def is_valid_http_url(url: str) -> bool:
    try:
        sanitize_url(url)
    except ValueError:
        return False
    return True


def extract_error_message(error: Any, default: str = "Unknown error") -> str:
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    if isinstance(error, str) and error:
        return error
    if isinstance(error, dict):
        inner = error.get("error")
        if isinstance(inner, dict) and inner.get("message"):
            return str(inner["message"])
        if error.get("message"):
            return str(error["message"])
    return default


async def call_maybe_async(callback: Optional[Callable[..., Any]], *args: Any) -> Any:
    """Call a sync or async callback and return its (awaited) result."""
    if callback is None:
        return None
    result = callback(*args)
    if inspect.isawaitable(result):
        return await result
    return result
