"""Configuration management using pydantic-settings."""

import logging
from pathlib import Path
from typing import List, Optional, Union

import aiofiles
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import DEFAULT_PARTICIPANT_COLOR
from .orchestration.types import OrchestratorConfig
from .providers.types import ProviderConfig

logger = logging.getLogger(__name__)

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables (prefix ``MLC_``)."""

    # Logging
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_interactions: bool = False

    # Participants
    participants_config_path: Path = Path("config/participants.yaml")

    # Orchestrator defaults
    max_concurrent_requests: int = 10
    request_timeout_ms: int = 30000
    retry_attempts: int = 3
    error_isolation: bool = True
    tool_call_max_iterations: int = 2

    model_config = SettingsConfigDict(
        env_prefix="MLC_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value):
        level = str(value or "INFO").strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {value}")
        return level

    def orchestrator_config(self) -> OrchestratorConfig:
        return OrchestratorConfig(
            max_concurrent_requests=self.max_concurrent_requests,
            request_timeout_ms=self.request_timeout_ms,
            retry_attempts=self.retry_attempts,
            error_isolation=self.error_isolation,
            tool_call_max_iterations=self.tool_call_max_iterations,
        )


class ParticipantSpec(BaseModel):
    """One entry of the participants file."""

    id: str = Field(min_length=1)
    display_name: Optional[str] = None
    color: str = DEFAULT_PARTICIPANT_COLOR
    active: bool = True
    provider: ProviderConfig

    def provider_config(self):
        """Provider config with ``display_name`` overridden by the entry's, if set."""
        if self.display_name and self.display_name != self.provider.display_name:
            return self.provider.model_copy(update={"display_name": self.display_name})
        return self.provider


class ParticipantsFile(BaseModel):
    participants: List[ParticipantSpec] = Field(default_factory=list)


async def load_participants_config(path: Union[str, Path]) -> List[ParticipantSpec]:
    """
    Read participant definitions from a YAML file.

    Args:
        path: Location of the participants file

    Returns:
        Validated participant specs; empty when the file does not exist

    Raises:
        ValueError: If the file is not valid YAML or fails validation
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Participants config not found: {path}")
        return []

    async with aiofiles.open(path, 'r', encoding='utf-8') as f:
        content = await f.read()

    try:
        data = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Participants config {path} must be a mapping with a 'participants' list")

    try:
        parsed = ParticipantsFile.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid participants config {path}: {e}") from e

    seen = set()
    for spec in parsed.participants:
        if spec.id in seen:
            raise ValueError(f"Duplicate participant id in {path}: {spec.id}")
        seen.add(spec.id)

    logger.info(f"Loaded {len(parsed.participants)} participant(s) from {path}")
    return parsed.participants


# Global settings instance
settings = Settings()
