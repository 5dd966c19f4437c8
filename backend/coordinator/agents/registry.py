"""Agent self-registration and listing."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.agents.liveness import OFFLINE_THRESHOLD, is_online
from coordinator.agents.schemas import AgentView
from coordinator.errors import ValidationError
from coordinator.storage.models import ACTIVE_STATUSES, Agent, AgentStatus, Task, ensure_utc

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def register_agent(
    db: AsyncSession,
    *,
    name: str,
    agent_type: str = "ai",
    capabilities: list[str] | None = None,
    description: str | None = None,
) -> Agent:
    if not name:
        raise ValidationError("name is required", field="name")

    now = _utcnow()
    agent = (
        await db.execute(select(Agent).where(Agent.name == name).execution_options(populate_existing=True))
    ).scalar_one_or_none()
    if agent is None:
        agent = Agent(
            name=name,
            type=agent_type,
            description=description,
            capabilities=capabilities or [],
            status=AgentStatus.active,
            last_seen=now,
            created_at=now,
        )
        db.add(agent)
        logger.info("agent_registered", extra={"agent": name, "agent_type": agent_type})
    else:
        agent.type = agent_type
        agent.description = description
        agent.capabilities = capabilities or []
        agent.status = AgentStatus.active
        agent.last_seen = now

    await db.flush()
    return agent


async def list_agents(
    db: AsyncSession,
    *,
    now: datetime | None = None,
    threshold: timedelta = OFFLINE_THRESHOLD,
) -> list[AgentView]:
    """List agents with status derived from heartbeat freshness and open claims."""
    now = now or _utcnow()
    query = select(Agent).order_by(Agent.name).execution_options(populate_existing=True)
    agents = (await db.execute(query)).scalars().all()
    busy = set(
        (
            await db.execute(
                select(Task.assigned_to).where(Task.status.in_(ACTIVE_STATUSES), Task.assigned_to.is_not(None)).distinct()
            )
        ).scalars().all()
    )

    views = []
    for agent in agents:
        if not is_online(agent.last_seen, now, threshold):
            status = AgentStatus.offline
        elif agent.name in busy:
            status = AgentStatus.active
        else:
            status = AgentStatus.idle
        view = AgentView.model_validate(agent)
        views.append(view.model_copy(update={"status": status, "last_seen": ensure_utc(agent.last_seen)}))
    return views
