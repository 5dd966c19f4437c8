"""Command mailbox schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class Command(BaseModel):
    """A single pending instruction for one remote target."""

    target_id: str
    action: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    queued_at: datetime


class CommandEnqueueRequest(BaseModel):
    target_id: str = Field(min_length=1)
    action: str = Field(min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)
