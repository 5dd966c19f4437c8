"""Configuration model for the standalone agent poller."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from coordinator.storage.models import TaskType


class AgentSettings(BaseSettings):
    """Environment-driven settings for the agent runtime."""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    agent_name: str = "agent-local-1"
    token: str = ""
    # Mailbox/status identity; defaults to the authenticated sender when unset
    target_id: str | None = None
    coordinator_url: str = "http://localhost:8000"
    poll_interval_seconds: float = 30.0
    request_timeout_seconds: float = 10.0

    # Restrict next_available to one task type; None takes anything
    task_type: TaskType | None = None
    capabilities: list[str] = []
    description: str | None = None
    model: str | None = None

    # How many times a lost claim race re-requests next_available per cycle
    max_claim_attempts: int = 3


@lru_cache
def get_agent_settings() -> AgentSettings:
    """Get cached agent settings."""
    return AgentSettings()
