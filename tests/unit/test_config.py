"""Tests for settings and the participants file loader."""

import pytest

from multi_llm_chat.config import Settings, load_participants_config
from multi_llm_chat.providers.types import HostedApiConfig, LMStudioConfig, OllamaConfig

PARTICIPANTS_YAML = """
participants:
  - id: gpt
    display_name: GPT-4o
    color: "#10a37f"
    provider:
      kind: api
      display_name: GPT
      model_name: gpt-4o-mini
      api_key: sk-test
  - id: llama
    active: false
    provider:
      kind: ollama
      display_name: Llama
      model_name: llama3
      keep_alive: 10m
  - id: local
    provider:
      kind: lmstudio
      display_name: Local
      model_name: qwen2.5-7b
"""


@pytest.mark.asyncio
async def test_load_participants_config_parses_each_provider_kind(tmp_path):
    path = tmp_path / "participants.yaml"
    path.write_text(PARTICIPANTS_YAML, encoding="utf-8")

    specs = await load_participants_config(path)

    assert [s.id for s in specs] == ["gpt", "llama", "local"]
    assert isinstance(specs[0].provider, HostedApiConfig)
    assert isinstance(specs[1].provider, OllamaConfig)
    assert isinstance(specs[2].provider, LMStudioConfig)
    assert specs[0].color == "#10a37f"
    assert specs[1].active is False
    assert specs[1].provider.keep_alive == "10m"
    assert specs[0].provider_config().display_name == "GPT-4o"
    assert specs[2].provider_config().display_name == "Local"


@pytest.mark.asyncio
async def test_missing_participants_file_yields_empty_list(tmp_path):
    assert await load_participants_config(tmp_path / "missing.yaml") == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content",
    [
        "participants: [unclosed",
        "- just\n- a list\n",
        "participants:\n  - id: x\n    provider:\n      kind: carrier-pigeon\n      display_name: X\n      model_name: m\n",
        "participants:\n  - id: a\n    provider: {kind: ollama, display_name: A, model_name: m}\n"
        "  - id: a\n    provider: {kind: ollama, display_name: B, model_name: m}\n",
    ],
)
async def test_malformed_participants_file_raises_value_error(tmp_path, content):
    path = tmp_path / "participants.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError):
        await load_participants_config(path)


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("MLC_LOG_LEVEL", "debug")
    monkeypatch.setenv("MLC_REQUEST_TIMEOUT_MS", "5000")
    monkeypatch.setenv("MLC_ERROR_ISOLATION", "false")

    settings = Settings(_env_file=None)
    config = settings.orchestrator_config()

    assert settings.log_level == "DEBUG"
    assert config.request_timeout_ms == 5000
    assert config.error_isolation is False
    assert config.max_concurrent_requests == 10
    assert config.tool_call_max_iterations == 2


def test_settings_reject_unknown_log_level(monkeypatch):
    monkeypatch.setenv("MLC_LOG_LEVEL", "chatty")

    with pytest.raises(ValueError):
        Settings(_env_file=None)
