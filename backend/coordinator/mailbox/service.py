"""One-shot command mailbox and per-target status board.

Both live in the ephemeral store only. A command expires after its TTL whether
or not it was read, and nothing records what expired.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from coordinator.errors import StoreUnavailable, ValidationError
from coordinator.mailbox.schemas import Command
from coordinator.storage.ephemeral import EphemeralStore

logger = logging.getLogger(__name__)

COMMAND_TTL_SECONDS = 600
STATUS_TTL_SECONDS = 600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require(store: EphemeralStore | None) -> EphemeralStore:
    if store is None:
        raise StoreUnavailable("ephemeral store not configured")
    return store


class CommandMailbox:
    """Holds at most one pending command per target."""

    def __init__(self, store: EphemeralStore | None, ttl_seconds: int = COMMAND_TTL_SECONDS) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(target_id: str) -> str:
        return f"command:{target_id}"

    async def enqueue_command(
        self,
        target_id: str,
        action: str,
        parameters: dict[str, Any] | None = None,
    ) -> Command:
        """Queue a command, replacing whatever was pending for the target."""
        if not target_id or not action:
            raise ValidationError("target_id and action required")

        store = _require(self.store)
        command = Command(
            target_id=target_id,
            action=action,
            parameters=parameters or {},
            queued_at=_utcnow(),
        )
        await store.set(self.key(target_id), command.model_dump_json(), self.ttl_seconds)
        logger.info("command_queued", extra={"target_id": target_id, "action": action})
        return command

    async def poll_and_clear(self, target_id: str) -> Command | None:
        """Deliver and remove the pending command in one atomic store call."""
        store = _require(self.store)
        raw = await store.get_and_delete(self.key(target_id))
        if raw is None:
            return None
        command = Command.model_validate_json(raw)
        logger.info("command_delivered", extra={"target_id": target_id, "action": command.action})
        return command


class StatusBoard:
    """Last status report pushed by each remote target."""

    def __init__(self, store: EphemeralStore | None, ttl_seconds: int = STATUS_TTL_SECONDS) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(target_id: str) -> str:
        return f"status:{target_id}"

    async def record_status(self, target_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        store = _require(self.store)
        report = {**payload, "target_id": target_id, "last_report": _utcnow().isoformat()}
        await store.set(self.key(target_id), json.dumps(report), self.ttl_seconds)
        return report

    async def list_statuses(self, known_targets: list[str]) -> list[dict[str, Any]]:
        store = _require(self.store)
        reports = []
        for target_id in known_targets:
            raw = await store.get(self.key(target_id))
            if raw is not None:
                reports.append(json.loads(raw))
        return reports
