"""
Hosted API Adapter

Adapter for hosted OpenAI-style chat-completions endpoints.
"""
import logging
from typing import Any, Dict, List

from ..types import HostedApiConfig, LLMRequest, ProviderKind, RateLimitConfig
from ..utils import is_valid_http_url, validate_api_key
from .openai_compatible import OpenAICompatibleAdapter

logger = logging.getLogger(__name__)

USER_AGENT = "Multi-LLM-Chat/1.0.0"


class APIAdapter(OpenAICompatibleAdapter):
    """
    Adapter for hosted APIs.

    Authenticates with a Bearer key and applies whatever per-minute limits
    the config declares (none by default).
    """

    kind = ProviderKind.API
    config: HostedApiConfig

    def _base_url(self) -> str:
        return self.config.base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
            "User-Agent": USER_AGENT,
        }
        if self.config.organization:
            headers["OpenAI-Organization"] = self.config.organization
        headers.update(self.config.headers)
        return headers

    def _extend_payload(self, payload: Dict[str, Any], request: LLMRequest) -> None:
        payload["metadata"] = {
            "conversation_id": request.metadata.conversation_id,
            "message_id": request.metadata.message_id,
        }

    def get_rate_limit_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            requests_per_minute=self.config.rate_limit_rpm,
            tokens_per_minute=self.config.rate_limit_tpm,
        )

    async def get_available_models(self) -> List[str]:
        models = await super().get_available_models()
        return models or [self.model_name]

    def _validate_specific(self, errors: List[str], warnings: List[str]) -> None:
        config = self.config
        if not config.api_key:
            errors.append("API key is required")
        elif not validate_api_key(config.api_key, "openai") and not validate_api_key(config.api_key):
            warnings.append("API key format looks unusual")
        if not is_valid_http_url(config.base_url):
            errors.append("Base URL must be a valid http(s) URL")
        if not config.model_name:
            errors.append("Model name is required")
        if config.rate_limit_rpm is not None and config.rate_limit_rpm < 0:
            errors.append("Requests per minute limit cannot be negative")
        if config.rate_limit_tpm is not None and config.rate_limit_tpm < 0:
            errors.append("Tokens per minute limit cannot be negative")
