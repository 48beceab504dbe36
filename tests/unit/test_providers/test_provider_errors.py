"""Unit tests for HTTP status to provider error mapping."""

import pytest

from multi_llm_chat.providers.errors import (
    AuthenticationError,
    InvalidRequestError,
    ModelNotFoundError,
    NetworkError,
    ProviderError,
    ProviderTimeoutError,
    QuotaExceededError,
    RateLimitError,
    create_error_from_response,
)


def test_401_maps_to_authentication_error():
    error = create_error_from_response("p1", 401, {"error": {"message": "bad key"}})

    assert isinstance(error, AuthenticationError)
    assert error.code == "AUTH_ERROR"
    assert error.message == "bad key"
    assert error.retryable is False


def test_404_on_completions_is_model_not_found():
    error = create_error_from_response("p1", 404, None, model_name="llama3")

    assert isinstance(error, ModelNotFoundError)
    assert str(error) == "Model 'llama3' not found"
    assert error.model_name == "llama3"


def test_404_elsewhere_is_endpoint_not_found():
    error = create_error_from_response("p1", 404, "nope", completions_endpoint=False)

    assert not isinstance(error, ModelNotFoundError)
    assert error.code == "ENDPOINT_NOT_FOUND"


def test_429_uses_retry_after_from_payload_then_header_then_default():
    from_payload = create_error_from_response("p1", 429, {"retry_after": 12})
    from_header = create_error_from_response("p1", 429, {}, retry_after_header="7")
    default = create_error_from_response("p1", 429, None)

    assert isinstance(from_payload, RateLimitError)
    assert from_payload.retry_after == 12
    assert from_header.retry_after == 7
    assert default.retry_after == 60
    assert default.retryable is True


def test_429_mentioning_quota_is_quota_exceeded():
    error = create_error_from_response("p1", 429, {"error": {"message": "You exceeded your current Quota"}})

    assert isinstance(error, QuotaExceededError)
    assert error.retryable is False


def test_400_is_invalid_request():
    error = create_error_from_response("p1", 400, {"message": "bad body"})

    assert isinstance(error, InvalidRequestError)
    assert error.message == "bad body"


@pytest.mark.parametrize("status", [500, 502, 503])
def test_server_errors_are_retryable_network_errors(status):
    error = create_error_from_response("p1", status, "boom")

    assert isinstance(error, NetworkError)
    assert error.retryable is True
    assert error.status_code == status


def test_other_statuses_fall_back_to_generic_error():
    timeout = create_error_from_response("p1", 408, None)
    forbidden = create_error_from_response("p1", 403, None)

    assert type(forbidden) is ProviderError
    assert forbidden.code == "HTTP_403"
    assert forbidden.retryable is False
    assert timeout.retryable is True


def test_timeout_error_message():
    error = ProviderTimeoutError("p1", 30000)

    assert str(error) == "Request timed out after 30000ms"
    assert error.code == "TIMEOUT"
    assert error.retryable is True
