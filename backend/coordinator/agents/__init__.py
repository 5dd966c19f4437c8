"""Agent registry and heartbeat-derived liveness."""
