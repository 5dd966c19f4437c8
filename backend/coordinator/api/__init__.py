"""HTTP routers."""

from coordinator.api import agents, channel, commands, health, tasks

__all__ = ["agents", "channel", "commands", "health", "tasks"]
