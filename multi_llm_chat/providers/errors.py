"""
Provider Errors

Typed failure taxonomy shared by all adapters, plus the HTTP status mapping.
"""
from typing import Any, Optional

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
DEFAULT_RETRY_AFTER_SECONDS = 60


class ProviderError(Exception):
    """Base error for every adapter failure."""

    def __init__(
        self,
        message: str,
        provider_id: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.provider_id = provider_id
        self.code = code
        self.status_code = status_code
        self.retryable = retryable

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(provider_id={self.provider_id!r}, code={self.code!r}, "
            f"status_code={self.status_code!r}, message={self.message!r})"
        )


class AuthenticationError(ProviderError):
    def __init__(self, provider_id: str, message: str = "Authentication failed"):
        super().__init__(message, provider_id, "AUTH_ERROR", 401, False)


class RateLimitError(ProviderError):
    def __init__(
        self,
        provider_id: str,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
    ):
        super().__init__(message, provider_id, "RATE_LIMIT", 429, True)
        self.retry_after = retry_after


class QuotaExceededError(ProviderError):
    def __init__(self, provider_id: str, message: str = "Quota exceeded"):
        super().__init__(message, provider_id, "QUOTA_EXCEEDED", 429, False)


class NetworkError(ProviderError):
    def __init__(
        self,
        provider_id: str,
        message: str = "Network error",
        status_code: Optional[int] = None,
    ):
        super().__init__(message, provider_id, "NETWORK_ERROR", status_code, True)


class ProviderTimeoutError(ProviderError):
    def __init__(self, provider_id: str, timeout_ms: float):
        super().__init__(
            f"Request timed out after {int(timeout_ms)}ms", provider_id, "TIMEOUT", None, True
        )
        self.timeout_ms = timeout_ms


class ModelNotFoundError(ProviderError):
    def __init__(self, provider_id: str, model_name: str):
        super().__init__(f"Model '{model_name}' not found", provider_id, "MODEL_NOT_FOUND", 404, False)
        self.model_name = model_name


class InvalidRequestError(ProviderError):
    def __init__(self, provider_id: str, message: str = "Invalid request"):
        super().__init__(message, provider_id, "INVALID_REQUEST", 400, False)


def _payload_message(payload: Any, default: str) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if payload.get("message"):
            return str(payload["message"])
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


def _retry_after(payload: Any, retry_after_header: Optional[str]) -> int:
    candidates = []
    if isinstance(payload, dict):
        candidates.append(payload.get("retry_after"))
        error = payload.get("error")
        if isinstance(error, dict):
            candidates.append(error.get("retry_after"))
    candidates.append(retry_after_header)
    for value in candidates:
        if value is None:
            continue
        try:
            return max(0, int(float(value)))
        except (TypeError, ValueError):
            continue
    return DEFAULT_RETRY_AFTER_SECONDS


def create_error_from_response(
    provider_id: str,
    status_code: int,
    payload: Any = None,
    *,
    model_name: str = "",
    completions_endpoint: bool = True,
    retry_after_header: Optional[str] = None,
) -> ProviderError:
    """
    Map an HTTP error status to the typed taxonomy.

    Args:
        provider_id: Adapter id the failure belongs to
        status_code: HTTP status returned by the backend
        payload: Parsed JSON body or raw text, if any
        model_name: Configured model, used for 404 on the completions endpoint
        completions_endpoint: Whether the failing call was the completion call
        retry_after_header: Raw Retry-After header value

    Returns:
        ProviderError subclass instance (not raised)
    """
    message = _payload_message(payload, f"HTTP {status_code}")

    if status_code == 401:
        return AuthenticationError(provider_id, message)
    if status_code == 404:
        if completions_endpoint:
            return ModelNotFoundError(provider_id, model_name)
        return ProviderError(message, provider_id, "ENDPOINT_NOT_FOUND", 404, False)
    if status_code == 429:
        # Best-effort: backends only signal quota exhaustion in free text.
        if "quota" in message.lower():
            return QuotaExceededError(provider_id, message)
        return RateLimitError(provider_id, message, _retry_after(payload, retry_after_header))
    if status_code == 400:
        return InvalidRequestError(provider_id, message)
    if status_code >= 500:
        return NetworkError(provider_id, f"Server error ({status_code}): {message}", status_code)
    return ProviderError(
        message,
        provider_id,
        f"HTTP_{status_code}",
        status_code,
        status_code in RETRYABLE_STATUS_CODES,
    )
