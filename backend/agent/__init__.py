"""Standalone agent runtime that polls the coordinator for commands and tasks."""

from agent.config import AgentSettings, get_agent_settings
from agent.main import AgentService, run_agent

__all__ = ["AgentService", "AgentSettings", "get_agent_settings", "run_agent"]
