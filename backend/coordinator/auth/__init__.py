"""Allow-list authentication for agents and the dashboard."""

from coordinator.auth.dependencies import CurrentSender, get_current_sender, resolve_sender

__all__ = ["CurrentSender", "get_current_sender", "resolve_sender"]
