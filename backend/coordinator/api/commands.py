"""Dashboard-side command mailbox APIs."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from coordinator.auth import get_current_sender
from coordinator.config import Settings, get_settings
from coordinator.mailbox.schemas import CommandEnqueueRequest
from coordinator.mailbox.service import CommandMailbox, StatusBoard
from coordinator.storage.ephemeral import EphemeralStore, get_ephemeral_store

router = APIRouter(prefix="/api/commands", tags=["commands"], dependencies=[Depends(get_current_sender)])


@router.post("")
async def enqueue_command_endpoint(
    request: CommandEnqueueRequest,
    store: EphemeralStore | None = Depends(get_ephemeral_store),
    settings: Settings = Depends(get_settings),
) -> dict:
    mailbox = CommandMailbox(store, settings.command_ttl_seconds)
    command = await mailbox.enqueue_command(request.target_id, request.action, request.parameters)
    return {
        "queued": {
            "action": command.action,
            "parameters": command.parameters,
            "queued_at": command.queued_at,
        }
    }


@router.get("/status")
async def command_status_endpoint(
    store: EphemeralStore | None = Depends(get_ephemeral_store),
    settings: Settings = Depends(get_settings),
) -> dict:
    board = StatusBoard(store, settings.status_ttl_seconds)
    return {
        "bots": await board.list_statuses(settings.known_targets),
        "timestamp": datetime.now(timezone.utc),
    }
