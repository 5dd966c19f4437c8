"""Task queue request/response schemas."""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from coordinator.storage.models import TaskPriority, TaskStatus, TaskType


def to_blob(value: Any) -> str | None:
    """Serialize an API payload/result into the opaque text stored on a task."""
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


class TaskView(BaseModel):
    """Task as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: TaskType
    description: str
    payload: str | None = None
    priority: TaskPriority
    status: TaskStatus
    assigned_to: str | None = None
    created_by: str
    result: str | None = None
    error: str | None = None
    created_at: datetime
    claimed_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class TaskEnqueueRequest(BaseModel):
    type: TaskType
    description: str = Field(min_length=1)
    priority: TaskPriority = TaskPriority.normal
    assigned_to: str | None = None
    payload: Any = None


class TaskClaimRequest(BaseModel):
    agent_name: str = Field(min_length=1)


class TaskCompleteRequest(BaseModel):
    result: Any


class TaskFailRequest(BaseModel):
    error: str = Field(min_length=1)


class TaskReclaimRequest(BaseModel):
    lease_seconds: int = Field(gt=0)


class TaskStats(BaseModel):
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    done: int = 0
    failed: int = 0
    cancelled: int = 0
