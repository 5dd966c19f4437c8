"""Agent registration, liveness and poll APIs."""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.agents.liveness import presence_snapshot, record_heartbeat
from coordinator.agents.registry import list_agents, register_agent
from coordinator.agents.schemas import AgentRegistrationRequest, AgentView, PollRequest
from coordinator.auth import CurrentSender, get_current_sender
from coordinator.config import Settings, get_settings
from coordinator.errors import StoreUnavailable
from coordinator.mailbox.service import CommandMailbox, StatusBoard
from coordinator.storage.database import get_db
from coordinator.storage.ephemeral import EphemeralStore, get_ephemeral_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agents", tags=["agents"], dependencies=[Depends(get_current_sender)])


def _threshold(settings: Settings) -> timedelta:
    return timedelta(seconds=settings.offline_threshold_seconds)


@router.post("/register", response_model=AgentView)
async def register_agent_endpoint(
    request: AgentRegistrationRequest,
    db: AsyncSession = Depends(get_db),
) -> AgentView:
    agent = await register_agent(
        db,
        name=request.name,
        agent_type=request.type,
        capabilities=request.capabilities,
        description=request.description,
    )
    return AgentView.model_validate(agent)


@router.get("", response_model=list[AgentView])
async def list_agents_endpoint(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> list[AgentView]:
    return await list_agents(db, threshold=_threshold(settings))


@router.post("/heartbeat")
async def heartbeat_endpoint(sender: CurrentSender, db: AsyncSession = Depends(get_db)) -> dict:
    last_seen = await record_heartbeat(db, sender)
    return {"ok": True, "sender": sender, "last_seen": last_seen}


@router.get("/presence")
async def presence_endpoint(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict:
    now = datetime.now(timezone.utc)
    bots = await presence_snapshot(db, settings.known_senders, now=now, threshold=_threshold(settings))
    return {"bots": bots, "server_time": now}


@router.post("/poll")
async def poll_endpoint(
    request: PollRequest,
    sender: CurrentSender,
    db: AsyncSession = Depends(get_db),
    store: EphemeralStore | None = Depends(get_ephemeral_store),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Heartbeat, push a status report and collect any pending command in one call."""
    target_id = request.target_id or sender
    await record_heartbeat(db, sender)

    try:
        if request.status_payload:
            await StatusBoard(store, settings.status_ttl_seconds).record_status(target_id, request.status_payload)
        command = await CommandMailbox(store, settings.command_ttl_seconds).poll_and_clear(target_id)
    except StoreUnavailable as exc:
        # Liveness is still recorded; the command waits for a later poll
        logger.warning(
            "poll_store_unavailable",
            extra={"sender": sender, "target_id": target_id, "error": str(exc)},
        )
        command = None
    return {"ok": True, "pending_command": command}
