"""HTTP client for the coordinator API."""

from __future__ import annotations

from typing import Any

import httpx

from coordinator.mailbox.schemas import Command
from coordinator.storage.models import TaskType
from coordinator.tasks.schemas import TaskView


class CoordinatorClient:
    """Client used by an agent to talk to the coordinator.

    Uses a persistent httpx.AsyncClient so the poll loop reuses connections
    instead of opening one per request.
    """

    def __init__(
        self,
        base_url: str,
        agent_name: str,
        token: str,
        target_id: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.agent_name = agent_name
        self.target_id = target_id
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                headers={"Authorization": f"Bearer {self._token}"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, body: dict | None = None) -> dict:
        client = await self._get_client()
        response = await client.post(path, json=body if body is not None else {})
        response.raise_for_status()
        return response.json()

    async def register(self, capabilities: list[str] | None = None, description: str | None = None) -> dict:
        return await self._post(
            "/api/agents/register",
            {"name": self.agent_name, "type": "ai", "description": description, "capabilities": capabilities or []},
        )

    async def poll(self, status_payload: dict[str, Any] | None = None) -> Command | None:
        """Heartbeat, report status and collect the pending command, if any."""
        payload = await self._post(
            "/api/agents/poll",
            {"target_id": self.target_id, "status_payload": status_payload or {}},
        )
        command = payload.get("pending_command")
        if command is None:
            return None
        return Command.model_validate(command)

    async def next_task(self, task_type: TaskType | None = None) -> TaskView | None:
        client = await self._get_client()
        params = {"agent": self.agent_name}
        if task_type is not None:
            params["type"] = task_type.value
        response = await client.get("/api/tasks/next", params=params)
        response.raise_for_status()
        task = response.json().get("task")
        if task is None:
            return None
        return TaskView.model_validate(task)

    async def claim(self, task_id: str) -> bool:
        payload = await self._post(f"/api/tasks/{task_id}/claim", {"agent_name": self.agent_name})
        return bool(payload.get("success"))

    async def start(self, task_id: str) -> bool:
        payload = await self._post(f"/api/tasks/{task_id}/start")
        return bool(payload.get("success"))

    async def complete(self, task_id: str, result: Any) -> bool:
        payload = await self._post(f"/api/tasks/{task_id}/complete", {"result": result})
        return bool(payload.get("success"))

    async def fail(self, task_id: str, error: str) -> bool:
        payload = await self._post(f"/api/tasks/{task_id}/fail", {"error": error})
        return bool(payload.get("success"))
