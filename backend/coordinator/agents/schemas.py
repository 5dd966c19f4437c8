"""Agent registry, liveness and poll schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from coordinator.storage.models import AgentStatus


class AgentRegistrationRequest(BaseModel):
    name: str = Field(min_length=1)
    type: str = "ai"
    description: str | None = None
    capabilities: list[str] = Field(default_factory=list)


class AgentView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: str
    description: str | None = None
    capabilities: list[str] = Field(default_factory=list)
    status: AgentStatus
    last_seen: datetime | None = None


class PresenceEntry(BaseModel):
    sender: str
    online: bool
    last_seen: datetime | None = None


class PollRequest(BaseModel):
    """Combined heartbeat + mailbox check sent by a remote machine."""

    target_id: str | None = None
    status_payload: dict[str, Any] = Field(default_factory=dict)
