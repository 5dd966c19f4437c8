"""Task queue and claim protocol APIs."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.auth import CurrentSender, get_current_sender
from coordinator.storage.database import get_db
from coordinator.storage.models import TaskPriority, TaskType
from coordinator.tasks.schemas import (
    TaskClaimRequest,
    TaskCompleteRequest,
    TaskEnqueueRequest,
    TaskFailRequest,
    TaskReclaimRequest,
    TaskStats,
    TaskView,
    to_blob,
)
from coordinator.tasks.service import (
    TaskFilters,
    cancel_task,
    claim_task,
    complete_task,
    enqueue_task,
    fail_task,
    get_task,
    get_task_stats,
    list_tasks,
    next_available_task,
    reclaim_expired_claims,
    start_task,
)

router = APIRouter(prefix="/api/tasks", tags=["tasks"], dependencies=[Depends(get_current_sender)])


@router.post("")
async def enqueue_task_endpoint(
    request: TaskEnqueueRequest,
    sender: CurrentSender,
    db: AsyncSession = Depends(get_db),
) -> dict:
    task = await enqueue_task(
        db,
        task_type=request.type,
        description=request.description,
        payload=to_blob(request.payload),
        priority=request.priority,
        assigned_to=request.assigned_to,
        created_by=sender,
    )
    view = TaskView.model_validate(task)
    return {"id": view.id, "status": view.status.value, "created_at": view.created_at, "task": view}


@router.get("")
async def list_tasks_endpoint(
    status: str | None = Query(None, description="Comma-separated statuses"),
    type: TaskType | None = None,
    assigned_to: str | None = None,
    priority: TaskPriority | None = None,
    limit: int = Query(100, ge=1, le=500),
    stats: bool = False,
    db: AsyncSession = Depends(get_db),
) -> dict:
    statuses = [s.strip() for s in status.split(",") if s.strip()] if status else None
    tasks = await list_tasks(
        db,
        TaskFilters(status=statuses, type=type, assigned_to=assigned_to, priority=priority, limit=limit),
    )
    response: dict = {"tasks": [TaskView.model_validate(task) for task in tasks]}
    if stats:
        response["stats"] = await get_task_stats(db)
    return response


@router.get("/next")
async def next_task_endpoint(
    agent: str | None = None,
    type: TaskType | None = None,
    db: AsyncSession = Depends(get_db),
) -> dict:
    task = await next_available_task(db, preferred_agent=agent, task_type=type)
    return {"task": TaskView.model_validate(task) if task else None}


@router.get("/stats", response_model=TaskStats)
async def task_stats_endpoint(db: AsyncSession = Depends(get_db)) -> TaskStats:
    return await get_task_stats(db)


@router.post("/reclaim")
async def reclaim_endpoint(
    request: TaskReclaimRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    reclaimed = await reclaim_expired_claims(db, lease_seconds=request.lease_seconds)
    return {"reclaimed": reclaimed}


@router.get("/{task_id}", response_model=TaskView)
async def get_task_endpoint(task_id: str, db: AsyncSession = Depends(get_db)) -> TaskView:
    task = await get_task(db, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return TaskView.model_validate(task)


@router.post("/{task_id}/claim")
async def claim_task_endpoint(
    task_id: str,
    request: TaskClaimRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    return {"success": await claim_task(db, task_id, request.agent_name)}


@router.post("/{task_id}/start")
async def start_task_endpoint(task_id: str, db: AsyncSession = Depends(get_db)) -> dict:
    return {"success": await start_task(db, task_id)}


@router.post("/{task_id}/complete")
async def complete_task_endpoint(
    task_id: str,
    request: TaskCompleteRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    return {"success": await complete_task(db, task_id, to_blob(request.result))}


@router.post("/{task_id}/fail")
async def fail_task_endpoint(
    task_id: str,
    request: TaskFailRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    return {"success": await fail_task(db, task_id, request.error)}


@router.post("/{task_id}/cancel")
async def cancel_task_endpoint(task_id: str, db: AsyncSession = Depends(get_db)) -> dict:
    return {"success": await cancel_task(db, task_id)}
