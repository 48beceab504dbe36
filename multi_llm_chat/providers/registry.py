"""
Adapter Registry

Builds adapters from provider configs and keeps one live adapter per
participant id.
"""
import asyncio
import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from .adapters import APIAdapter, LMStudioAdapter, OllamaAdapter
from .base import BaseLLMAdapter
from .types import (
    ConnectionTestResult,
    HostedApiConfig,
    LMStudioConfig,
    OllamaConfig,
)
from .utils import extract_error_message

logger = logging.getLogger(__name__)


def create_adapter(adapter_id: str, config: Any, **options: Any) -> BaseLLMAdapter:
    """
    Construct the adapter matching a provider config variant.

    Args:
        adapter_id: Id the adapter (and its participant) is registered under
        config: One of the ProviderConfig variants
        **options: Forwarded to the adapter constructor (retries, transport...)

    Returns:
        New adapter instance
    """
    match config:
        case HostedApiConfig():
            return APIAdapter(adapter_id, config, **options)
        case OllamaConfig():
            return OllamaAdapter(adapter_id, config, **options)
        case LMStudioConfig():
            return LMStudioAdapter(adapter_id, config, **options)
        case _:
            raise ValueError(f"Unsupported provider config: {type(config).__name__}")


class AdapterRegistry:
    """
    Live adapters keyed by participant id.

    Owned by one orchestrator; adapters are reused while their config is
    unchanged and replaced when it differs.
    """

    def __init__(self, **adapter_options: Any):
        self._adapters: Dict[str, BaseLLMAdapter] = {}
        self._adapter_options = adapter_options

    def register(self, adapter_id: str, adapter: BaseLLMAdapter) -> None:
        self._adapters[adapter_id] = adapter
        logger.debug(f"Registered adapter '{adapter_id}' ({type(adapter).__name__})")

    def get(self, adapter_id: str) -> Optional[BaseLLMAdapter]:
        return self._adapters.get(adapter_id)

    def build(self, adapter_id: str, config: Any, **options: Any) -> BaseLLMAdapter:
        """Create an adapter with the registry's default options, without registering it."""
        return create_adapter(adapter_id, config, **{**self._adapter_options, **options})

    def get_or_create(self, adapter_id: str, config: Any, **options: Any) -> BaseLLMAdapter:
        """
        Return the adapter for ``adapter_id``, replacing it if the config changed.

        Args:
            adapter_id: Participant id
            config: Desired provider config
            **options: Overrides for the registry's default adapter options

        Returns:
            Existing adapter when its config equals ``config``, else a new one
        """
        existing = self._adapters.get(adapter_id)
        if existing is not None and existing.config == config:
            return existing
        if existing is not None:
            logger.info(f"Config changed for '{adapter_id}', replacing adapter")
        adapter = self.build(adapter_id, config, **options)
        self.register(adapter_id, adapter)
        return adapter

    def remove(self, adapter_id: str) -> Optional[BaseLLMAdapter]:
        return self._adapters.pop(adapter_id, None)

    def ids(self) -> List[str]:
        return list(self._adapters)

    def clear(self) -> None:
        self._adapters.clear()

    def __contains__(self, adapter_id: str) -> bool:
        return adapter_id in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)

    async def health_check_all(self) -> Dict[str, ConnectionTestResult]:
        """Test every adapter concurrently; one failure never hides another result."""
        adapter_ids = list(self._adapters)
        results = await asyncio.gather(
            *(self._adapters[adapter_id].test_connection() for adapter_id in adapter_ids),
            return_exceptions=True,
        )
        report: Dict[str, ConnectionTestResult] = {}
        for adapter_id, result in zip(adapter_ids, results):
            if isinstance(result, BaseException):
                report[adapter_id] = ConnectionTestResult(
                    success=False, error=extract_error_message(result)
                )
            else:
                report[adapter_id] = result
        return report

    def get_stats(self) -> Dict[str, Any]:
        by_kind = Counter(adapter.kind.value for adapter in self._adapters.values())
        return {"total_adapters": len(self._adapters), "by_kind": dict(by_kind)}
