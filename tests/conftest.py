"""Shared pytest fixtures for all tests."""

import shutil
import uuid
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional

import pytest

from multi_llm_chat.models import HUMAN_SENDER, ChatMessage, Participant
from multi_llm_chat.providers.base import BaseLLMAdapter
from multi_llm_chat.providers.types import (
    HostedApiConfig,
    LLMRequest,
    LLMResponse,
    ProviderKind,
    StreamChunk,
)


def _create_workspace_temp_dir(kind: str) -> Path:
    """Create a temporary directory under repository-local .pytest_work."""
    repo_root = Path(__file__).resolve().parents[1]
    root_dir = repo_root / ".pytest_work" / kind
    root_dir.mkdir(parents=True, exist_ok=True)
    temp_dir = root_dir / f"{kind}_{uuid.uuid4().hex[:8]}"
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


@pytest.fixture
def tmp_path():
    """Workspace-local replacement for pytest's tmp_path fixture."""
    temp_dir = _create_workspace_temp_dir("tmp_path")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


class ScriptedAdapter(BaseLLMAdapter):
    """
    In-memory adapter driven by a handler.

    ``handler(request)`` returns an LLMResponse, a string (used as content) or
    raises. Streaming splits the handler's content on spaces.
    """

    kind = ProviderKind.API

    def __init__(self, adapter_id, config, handler, *, models: Optional[List[str]] = None, **options):
        options.setdefault("max_retries", 0)
        options.setdefault("retry_base_delay_ms", 0)
        super().__init__(adapter_id, config, **options)
        self.handler = handler
        self.models = models if models is not None else [config.model_name]
        self.requests: List[LLMRequest] = []

    async def _call_handler(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        result = self.handler(request)
        if hasattr(result, "__await__"):
            result = await result
        if isinstance(result, str):
            return LLMResponse(model_id=self.id, content=result)
        return result

    async def _send_once(self, request: LLMRequest) -> LLMResponse:
        return await self._call_handler(request)

    async def _stream_once(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        response = await self._call_handler(request)
        for n, word in enumerate(response.content.split(" ")):
            yield StreamChunk(content=word if n == 0 else f" {word}")
        yield StreamChunk(done=True, finish_reason="stop")

    async def _fetch_models(self) -> List[str]:
        return list(self.models)


def _api_config(display_name: str, model_name: str = "gpt-test") -> HostedApiConfig:
    return HostedApiConfig(
        display_name=display_name,
        model_name=model_name,
        api_key="sk-" + "a" * 48,
    )


@pytest.fixture
def make_adapter() -> Callable[..., ScriptedAdapter]:
    """Factory for ScriptedAdapter instances."""

    def factory(adapter_id: str, handler, display_name: Optional[str] = None, **options) -> ScriptedAdapter:
        config = _api_config(display_name or adapter_id.capitalize())
        return ScriptedAdapter(adapter_id, config, handler, **options)

    return factory


@pytest.fixture
def make_participant() -> Callable[..., Participant]:
    def factory(participant_id: str, display_name: Optional[str] = None, **fields) -> Participant:
        return Participant(
            id=participant_id,
            display_name=display_name or participant_id.capitalize(),
            provider=fields.pop("provider", ProviderKind.API),
            model_name=fields.pop("model_name", "gpt-test"),
            **fields,
        )

    return factory


@pytest.fixture
def make_message() -> Callable[..., ChatMessage]:
    counter = {"n": 0}

    def factory(content: str, sender: str = HUMAN_SENDER, **fields) -> ChatMessage:
        counter["n"] += 1
        return ChatMessage(id=fields.pop("id", f"m{counter['n']}"), content=content, sender=sender, **fields)

    return factory


@pytest.fixture
def api_config() -> Callable[..., HostedApiConfig]:
    return _api_config
