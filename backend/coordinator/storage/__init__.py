"""Storage package init."""
from coordinator.storage.database import Base, get_db, init_db, engine
from coordinator.storage.models import (
    Task,
    Agent,
    Heartbeat,
    ChannelMessage,
    TaskType,
    TaskPriority,
    TaskStatus,
    AgentStatus,
)

__all__ = [
    "Base",
    "get_db",
    "init_db",
    "engine",
    "Task",
    "Agent",
    "Heartbeat",
    "ChannelMessage",
    "TaskType",
    "TaskPriority",
    "TaskStatus",
    "AgentStatus",
]
