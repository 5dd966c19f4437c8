"""Task queue and claim protocol service layer.

Every state change is a single conditional UPDATE keyed on the task's current
status. The at-most-one-claim guarantee comes from the store applying that
UPDATE atomically; there is no application-level lock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.errors import ValidationError
from coordinator.storage.models import (
    ACTIVE_STATUSES,
    PRIORITY_RANK,
    Task,
    TaskPriority,
    TaskStatus,
    TaskType,
)
from coordinator.tasks.schemas import TaskStats

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100

_priority_rank = case(PRIORITY_RANK, value=Task.priority)


def _utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def _coerce(enum_cls, value, field: str):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field}. Must be one of: {allowed}", field=field) from exc


@dataclass
class TaskFilters:
    """Read-only query filters for list_tasks."""

    status: TaskStatus | list[TaskStatus] | None = None
    type: TaskType | None = None
    assigned_to: str | None = None
    priority: TaskPriority | None = None
    limit: int | None = None


async def enqueue_task(
    db: AsyncSession,
    *,
    task_type: TaskType | str,
    description: str,
    payload: str | None = None,
    priority: TaskPriority | str = TaskPriority.normal,
    assigned_to: str | None = None,
    created_by: str | None = None,
) -> Task:
    if not description or not description.strip():
        raise ValidationError("description is required", field="description")

    task = Task(
        type=_coerce(TaskType, task_type, "type"),
        description=description,
        payload=payload,
        priority=_coerce(TaskPriority, priority, "priority") or TaskPriority.normal,
        status=TaskStatus.pending,
        assigned_to=assigned_to or None,
        created_by=created_by or "dashboard",
        created_at=_utcnow(),
    )
    db.add(task)
    await db.flush()
    await db.refresh(task)
    logger.info(
        "task_enqueued",
        extra={
            "task_id": task.id,
            "task_type": task.type.value,
            "priority": task.priority.value,
            "assigned_to": task.assigned_to,
            "created_by": task.created_by,
        },
    )
    return task


async def get_task(db: AsyncSession, task_id: str) -> Task | None:
    return await db.get(Task, task_id, populate_existing=True)


async def list_tasks(db: AsyncSession, filters: TaskFilters | None = None) -> list[Task]:
    filters = filters or TaskFilters()
    query = select(Task)

    if filters.status:
        statuses = filters.status if isinstance(filters.status, list) else [filters.status]
        query = query.where(Task.status.in_([_coerce(TaskStatus, s, "status") for s in statuses]))
    if filters.type:
        query = query.where(Task.type == _coerce(TaskType, filters.type, "type"))
    if filters.assigned_to:
        query = query.where(Task.assigned_to == filters.assigned_to)
    if filters.priority:
        query = query.where(Task.priority == _coerce(TaskPriority, filters.priority, "priority"))

    query = (
        query.order_by(_priority_rank.asc(), Task.created_at.desc(), Task.id.asc())
        .limit(filters.limit or DEFAULT_LIST_LIMIT)
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(query)).scalars().all())


async def next_available_task(
    db: AsyncSession,
    *,
    preferred_agent: str | None = None,
    task_type: TaskType | str | None = None,
) -> Task | None:
    """Return the best pending candidate without claiming it.

    Order: priority rank, then oldest created_at, then id.
    """
    query = select(Task).where(Task.status == TaskStatus.pending)
    if task_type:
        query = query.where(Task.type == _coerce(TaskType, task_type, "type"))
    if preferred_agent:
        query = query.where(or_(Task.assigned_to.is_(None), Task.assigned_to == preferred_agent))

    query = (
        query.order_by(_priority_rank.asc(), Task.created_at.asc(), Task.id.asc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(query)).scalars().first()


async def claim_task(db: AsyncSession, task_id: str, agent_name: str) -> bool:
    """Claim a pending task. Returns False if someone else got there first.

    A task enqueued with assigned_to is reserved: only that agent can claim it,
    an extension of plain first-come claiming.
    """
    if not agent_name:
        raise ValidationError("agent_name is required for claim", field="agent_name")

    result = await db.execute(
        update(Task)
        .where(
            Task.id == task_id,
            Task.status == TaskStatus.pending,
            or_(Task.assigned_to.is_(None), Task.assigned_to == agent_name),
        )
        .values(status=TaskStatus.claimed, assigned_to=agent_name, claimed_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    claimed = result.rowcount == 1
    if claimed:
        logger.info("task_claimed", extra={"task_id": task_id, "agent": agent_name})
    else:
        logger.info("task_claim_conflict", extra={"task_id": task_id, "agent": agent_name})
    return claimed


async def start_task(db: AsyncSession, task_id: str) -> bool:
    """Move a claimed task to in_progress."""
    result = await db.execute(
        update(Task)
        .where(Task.id == task_id, Task.status == TaskStatus.claimed)
        .values(status=TaskStatus.in_progress, started_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    started = result.rowcount == 1
    if started:
        logger.info("task_started", extra={"task_id": task_id})
    return started


async def _current_status(db: AsyncSession, task_id: str) -> TaskStatus | None:
    return (await db.execute(select(Task.status).where(Task.id == task_id))).scalar_one_or_none()


async def complete_task(db: AsyncSession, task_id: str, result: str | None) -> bool:
    """Mark an owned task done. Completing an already-done task is a no-op."""
    outcome = await db.execute(
        update(Task)
        .where(Task.id == task_id, Task.status.in_(ACTIVE_STATUSES))
        .values(status=TaskStatus.done, result=result, completed_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount == 1:
        logger.info("task_completed", extra={"task_id": task_id})
        return True
    return await _current_status(db, task_id) == TaskStatus.done


async def fail_task(db: AsyncSession, task_id: str, error: str) -> bool:
    """Record a permanent failure. There is no automatic retry."""
    if not error:
        raise ValidationError("error is required for fail", field="error")

    outcome = await db.execute(
        update(Task)
        .where(Task.id == task_id, Task.status.in_(ACTIVE_STATUSES))
        .values(status=TaskStatus.failed, error=error, completed_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount == 1:
        logger.warning("task_failed", extra={"task_id": task_id, "error": error})
        return True
    return await _current_status(db, task_id) == TaskStatus.failed


async def cancel_task(db: AsyncSession, task_id: str) -> bool:
    """Cancel a task that has not started running."""
    outcome = await db.execute(
        update(Task)
        .where(Task.id == task_id, Task.status.in_([TaskStatus.pending, TaskStatus.claimed]))
        .values(status=TaskStatus.cancelled, completed_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount == 1:
        logger.info("task_cancelled", extra={"task_id": task_id})
        return True
    return await _current_status(db, task_id) == TaskStatus.cancelled


async def get_task_stats(db: AsyncSession) -> TaskStats:
    rows = (await db.execute(select(Task.status, func.count()).group_by(Task.status))).all()
    counts = {status: count for status, count in rows}
    return TaskStats(
        total=sum(counts.values()),
        pending=counts.get(TaskStatus.pending, 0),
        in_progress=counts.get(TaskStatus.claimed, 0) + counts.get(TaskStatus.in_progress, 0),
        done=counts.get(TaskStatus.done, 0),
        failed=counts.get(TaskStatus.failed, 0),
        cancelled=counts.get(TaskStatus.cancelled, 0),
    )


async def reclaim_expired_claims(
    db: AsyncSession,
    *,
    lease_seconds: int,
    now: datetime | None = None,
) -> list[str]:
    """Return claims older than the lease to pending.

    Operator-triggered only. This is the one path that clears assigned_to, so a
    crashed claimant's work can be picked up by another agent.
    """
    if lease_seconds <= 0:
        raise ValidationError("lease_seconds must be positive", field="lease_seconds")

    cutoff = (now or _utcnow()) - timedelta(seconds=lease_seconds)
    candidates = (
        await db.execute(
            select(Task.id, Task.assigned_to).where(
                Task.status.in_(ACTIVE_STATUSES),
                Task.claimed_at < cutoff,
            )
        )
    ).all()

    reclaimed: list[str] = []
    for task_id, previous_owner in candidates:
        outcome = await db.execute(
            update(Task)
            .where(
                Task.id == task_id,
                Task.status.in_(ACTIVE_STATUSES),
                Task.claimed_at < cutoff,
            )
            .values(status=TaskStatus.pending, assigned_to=None, claimed_at=None, started_at=None)
            .execution_options(synchronize_session=False)
        )
        if outcome.rowcount == 1:
            reclaimed.append(task_id)
            logger.warning(
                "task_claim_reclaimed",
                extra={"task_id": task_id, "previous_owner": previous_owner, "lease_seconds": lease_seconds},
            )
    return reclaimed
