"""SQLAlchemy models for the coordination layer."""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from uuid import uuid4

from sqlalchemy import String, Text, DateTime, JSON, Enum, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from coordinator.storage.database import Base


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to datetimes read back without tzinfo (SQLite drops it)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _new_task_id() -> str:
    return f"task_{uuid4().hex}"


# ============================================================================
# Enums
# ============================================================================

class TaskType(str, PyEnum):
    # Social/PR
    post_feedback = "post_feedback"
    post_edit = "post_edit"
    post_create = "post_create"
    post_approve = "post_approve"
    post_schedule = "post_schedule"
    post_review = "post_review"
    # Books/editorial
    book_edit = "book_edit"
    book_create = "book_create"
    book_review = "book_review"
    book_translate = "book_translate"
    book_update = "book_update"
    # Images
    image_generate = "image_generate"
    image_edit = "image_edit"
    image_upscale = "image_upscale"
    # General content
    content_create = "content_create"
    content_review = "content_review"
    content_translate = "content_translate"
    # Engineering
    code_review = "code_review"
    code_fix = "code_fix"
    code_deploy = "code_deploy"
    code_test = "code_test"
    # QA
    qa_test = "qa_test"
    qa_report = "qa_report"
    qa_validate = "qa_validate"
    # Automation
    automation_run = "automation_run"
    automation_schedule = "automation_schedule"
    automation_monitor = "automation_monitor"
    # Agent-to-agent
    agent_message = "agent_message"
    agent_request = "agent_request"
    agent_response = "agent_response"


class TaskPriority(str, PyEnum):
    urgent = "urgent"
    high = "high"
    normal = "normal"
    low = "low"


PRIORITY_RANK: dict[TaskPriority, int] = {
    TaskPriority.urgent: 1,
    TaskPriority.high: 2,
    TaskPriority.normal: 3,
    TaskPriority.low: 4,
}


class TaskStatus(str, PyEnum):
    pending = "pending"
    claimed = "claimed"
    in_progress = "in_progress"
    done = "done"
    failed = "failed"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset({TaskStatus.done, TaskStatus.failed, TaskStatus.cancelled})
ACTIVE_STATUSES = frozenset({TaskStatus.claimed, TaskStatus.in_progress})


class AgentStatus(str, PyEnum):
    active = "active"
    idle = "idle"
    offline = "offline"


# ============================================================================
# Durable store tables
# ============================================================================

class Task(Base):
    """Shared work queue entry. Rows are kept after completion as audit history."""

    __tablename__ = "agent_tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_task_id)
    type: Mapped[TaskType] = mapped_column(Enum(TaskType), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[TaskPriority] = mapped_column(Enum(TaskPriority), nullable=False, default=TaskPriority.normal)
    status: Mapped[TaskStatus] = mapped_column(Enum(TaskStatus), nullable=False, default=TaskStatus.pending, index=True)
    assigned_to: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False, default="dashboard")

    result: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_agent_tasks_status_priority_created", "status", "priority", "created_at"),
    )


class Agent(Base):
    """Registered worker identity."""

    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="ai")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    capabilities: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[AgentStatus] = mapped_column(Enum(AgentStatus), nullable=False, default=AgentStatus.active)
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class Heartbeat(Base):
    """Most recent heartbeat per sender. Upserted, never appended."""

    __tablename__ = "heartbeats"

    sender: Mapped[str] = mapped_column(String(255), primary_key=True)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class ChannelMessage(Base):
    """Message on the shared agent channel."""

    __tablename__ = "channel_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    reply_to: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
