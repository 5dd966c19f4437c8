"""Agent coordinator: shared task queue, command mailbox and liveness tracking."""
