"""Shared channel schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class ChannelPostRequest(BaseModel):
    content: Any = None
    reply_to: Any = None


class ChannelMessageView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender: str
    content: str
    reply_to: int | None = None
    created_at: datetime
