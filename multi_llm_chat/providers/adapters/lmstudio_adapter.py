"""
LM Studio Adapter

Adapter for a local LM Studio server (OpenAI-compatible, served under /v1).
"""
from typing import Dict, List

from ..types import LMStudioConfig, ProviderKind, RateLimitConfig
from ..utils import is_valid_http_url
from .openai_compatible import OpenAICompatibleAdapter


class LMStudioAdapter(OpenAICompatibleAdapter):
    """Adapter for LM Studio's local server."""

    kind = ProviderKind.LMSTUDIO
    config: LMStudioConfig

    _DEFAULT_RATE_LIMIT = RateLimitConfig(requests_per_minute=120, tokens_per_minute=20000)
    _REQUIRE_SERVED_MODEL = True

    def _base_url(self) -> str:
        return f"{self.config.host.rstrip('/')}/v1"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _finalize_content(self, content: str) -> str:
        return content.strip()

    def _validate_specific(self, errors: List[str], warnings: List[str]) -> None:
        if not is_valid_http_url(self.config.host):
            errors.append("Host must be a valid http(s) URL")
        if not self.config.model_name:
            errors.append("Model name is required")
        if self.config.api_key is not None and len(self.config.api_key) < 10:
            warnings.append("API key seems too short")
