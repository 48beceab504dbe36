"""
LLM Provider Layer

Normalizes the hosted API, Ollama and LM Studio wire protocols behind one
adapter contract.

Key components:
- types: Config variants and request/response models
- errors: Typed failure taxonomy
- base: Shared validation, rate limiting, retry and streaming behavior
- adapters: Wire-specific implementations
- registry: Adapter construction and per-participant reuse

Usage:
    from multi_llm_chat.providers import (
        AdapterRegistry, LLMRequest, OllamaConfig, RequestMessage,
    )

    registry = AdapterRegistry()
    adapter = registry.get_or_create(
        "llama",
        OllamaConfig(display_name="Llama", model_name="llama3"),
    )
    response = await adapter.send_request(
        LLMRequest(messages=[RequestMessage(role="user", content="Hi")])
    )
"""
from .base import BaseLLMAdapter
from .errors import (
    AuthenticationError,
    InvalidRequestError,
    ModelNotFoundError,
    NetworkError,
    ProviderError,
    ProviderTimeoutError,
    QuotaExceededError,
    RateLimitError,
)
from .registry import AdapterRegistry, create_adapter
from .types import (
    ConnectionTestResult,
    HealthCheckResult,
    HostedApiConfig,
    LLMRequest,
    LLMResponse,
    LMStudioConfig,
    OllamaConfig,
    ProviderConfig,
    ProviderKind,
    RateLimitConfig,
    RequestMessage,
    RequestMetadata,
    ResponseMetadata,
    StreamChunk,
    TokenUsage,
    ToolCall,
    ToolResult,
    ValidationResult,
)

__all__ = [
    "BaseLLMAdapter",
    "AuthenticationError",
    "InvalidRequestError",
    "ModelNotFoundError",
    "NetworkError",
    "ProviderError",
    "ProviderTimeoutError",
    "QuotaExceededError",
    "RateLimitError",
    "AdapterRegistry",
    "create_adapter",
    "ConnectionTestResult",
    "HealthCheckResult",
    "HostedApiConfig",
    "LLMRequest",
    "LLMResponse",
    "LMStudioConfig",
    "OllamaConfig",
    "ProviderConfig",
    "ProviderKind",
    "RateLimitConfig",
    "RequestMessage",
    "RequestMetadata",
    "ResponseMetadata",
    "StreamChunk",
    "TokenUsage",
    "ToolCall",
    "ToolResult",
    "ValidationResult",
]
