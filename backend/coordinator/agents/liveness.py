"""Heartbeat-derived presence.

Only the latest heartbeat per sender is kept; online/offline is computed at
read time and never stored.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.agents.schemas import PresenceEntry
from coordinator.storage.models import Agent, AgentStatus, Heartbeat, ensure_utc

logger = logging.getLogger(__name__)

OFFLINE_THRESHOLD = timedelta(minutes=5)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_online(last_seen: datetime | None, now: datetime, threshold: timedelta = OFFLINE_THRESHOLD) -> bool:
    if last_seen is None:
        return False
    return now - ensure_utc(last_seen) < threshold


async def record_heartbeat(db: AsyncSession, sender: str) -> datetime:
    """Upsert last_seen for sender, creating the row on first contact."""
    now = _utcnow()
    dialect = db.get_bind().dialect.name
    insert = _UPSERT_DIALECTS.get(dialect)

    if insert is not None:
        stmt = insert(Heartbeat).values(sender=sender, last_seen=now)
        stmt = stmt.on_conflict_do_update(index_elements=[Heartbeat.sender], set_={"last_seen": now})
        await db.execute(stmt)
    else:
        row = await db.get(Heartbeat, sender)
        if row is None:
            db.add(Heartbeat(sender=sender, last_seen=now))
        else:
            row.last_seen = now

    # Registered agents share the heartbeat
    await db.execute(
        update(Agent)
        .where(Agent.name == sender)
        .values(last_seen=now, status=AgentStatus.active)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    logger.debug("heartbeat_recorded", extra={"sender": sender})
    return now


async def presence_snapshot(
    db: AsyncSession,
    known_senders: list[str],
    *,
    now: datetime | None = None,
    threshold: timedelta = OFFLINE_THRESHOLD,
) -> list[PresenceEntry]:
    """Report online/offline for each known sender, in the order given."""
    now = now or _utcnow()
    rows = (
        await db.execute(select(Heartbeat.sender, Heartbeat.last_seen).where(Heartbeat.sender.in_(known_senders)))
    ).all()
    last_seen_by_sender = {sender: ensure_utc(last_seen) for sender, last_seen in rows}

    return [
        PresenceEntry(
            sender=sender,
            online=is_online(last_seen_by_sender.get(sender), now, threshold),
            last_seen=last_seen_by_sender.get(sender),
        )
        for sender in known_senders
    ]
