"""
Provider Types and Data Models

Defines the provider config variants and the normalized request/response
models shared by every adapter.
"""
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ProviderKind(str, Enum):
    """Supported backend kinds"""
    API = "api"                 # Hosted OpenAI-style chat completions
    OLLAMA = "ollama"           # Local prompt-completion server with NDJSON streaming
    LMSTUDIO = "lmstudio"       # Local OpenAI-compatible server


class _ProviderConfigBase(BaseModel):
    """Fields shared by every provider config variant."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    display_name: str = Field(..., description="Name shown for this participant")
    description: Optional[str] = None
    model_name: str = Field(..., description="Backend model identifier")
    max_tokens: Optional[int] = Field(default=None, description="Max completion tokens")
    temperature: Optional[float] = Field(default=None, description="Sampling temperature (0-2)")
    top_p: Optional[float] = Field(default=None, description="Nucleus sampling (0-1)")
    timeout_ms: Optional[int] = Field(default=None, description="Per-attempt HTTP timeout")


class HostedApiConfig(_ProviderConfigBase):
    """Hosted OpenAI-style API endpoint."""
    kind: Literal["api"] = "api"
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    organization: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    rate_limit_rpm: Optional[int] = None
    rate_limit_tpm: Optional[int] = None


class OllamaConfig(_ProviderConfigBase):
    """Local server speaking /api/generate with NDJSON streaming."""
    kind: Literal["ollama"] = "ollama"
    host: str = "http://localhost:11434"
    keep_alive: Optional[str] = "5m"
    num_ctx: Optional[int] = Field(default=None, description="Context window size")
    num_gpu: Optional[int] = None


class LMStudioConfig(_ProviderConfigBase):
    """Local OpenAI-compatible server under /v1."""
    kind: Literal["lmstudio"] = "lmstudio"
    host: str = "http://localhost:1234"
    api_key: Optional[str] = None


ProviderConfig = Annotated[
    Union[HostedApiConfig, OllamaConfig, LMStudioConfig],
    Field(discriminator="kind"),
]


class ToolCall(BaseModel):
    """A tool invocation requested by a model."""
    id: Optional[str] = None
    function_name: str
    arguments_json: str = "{}"

    def to_openai(self, fallback_id: str) -> Dict[str, Any]:
        return {
            "id": self.id or fallback_id,
            "type": "function",
            "function": {"name": self.function_name, "arguments": self.arguments_json},
        }


class ToolResult(BaseModel):
    """Outcome of executing one ToolCall."""
    id: str
    name: str
    arguments: Optional[Any] = None
    output: str = ""
    error: Optional[str] = None


class RequestMessage(BaseModel):
    """One chat message in wire-neutral form."""
    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None


class RequestMetadata(BaseModel):
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    participant_names: List[str] = Field(default_factory=list)


class LLMRequest(BaseModel):
    """Generic request accepted by every adapter."""
    messages: List[RequestMessage]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    tools: Optional[List[Dict[str, Any]]] = None
    tool_choice: Optional[Any] = None
    metadata: RequestMetadata = Field(default_factory=RequestMetadata)


class TokenUsage(BaseModel):
    """Token usage as reported by the backend; fields stay None when absent."""
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["TokenUsage"]:
        """Create TokenUsage from an OpenAI-style usage dict."""
        if not data:
            return None
        return cls(
            prompt_tokens=data.get("prompt_tokens"),
            completion_tokens=data.get("completion_tokens"),
            total_tokens=data.get("total_tokens"),
        )


class ResponseMetadata(BaseModel):
    processing_time_ms: float = 0.0
    token_count: Optional[int] = None
    finish_reason: Optional[str] = None
    error: Optional[str] = None


class LLMResponse(BaseModel):
    """Normalized reply from any adapter."""
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[ToolResult] = Field(default_factory=list)
    usage: Optional[TokenUsage] = None
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)


class StreamChunk(BaseModel):
    """Incremental piece of a streamed reply."""
    content: str = ""
    done: bool = False
    finish_reason: Optional[str] = None
    usage: Optional[TokenUsage] = None


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ConnectionTestResult(BaseModel):
    success: bool
    latency_ms: float = 0.0
    available_models: Optional[List[str]] = None
    error: Optional[str] = None


class HealthCheckResult(BaseModel):
    healthy: bool
    latency_ms: float = 0.0
    error: Optional[str] = None
    last_checked: float = Field(..., description="Unix timestamp of the check")


class RateLimitConfig(BaseModel):
    """Per-minute ceilings; None or 0 disables that ceiling."""
    requests_per_minute: Optional[int] = None
    tokens_per_minute: Optional[int] = None
