"""Entrypoint and poll loop for the standalone agent."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any

import httpx

from agent.client import CoordinatorClient
from agent.config import AgentSettings, get_agent_settings
from agent.runner import TaskRunner
from coordinator.mailbox.schemas import Command
from coordinator.tasks.schemas import TaskView

logger = logging.getLogger(__name__)


class AgentService:
    """Runs the poll, command, claim and execute cycle."""

    def __init__(
        self,
        settings: AgentSettings,
        client: CoordinatorClient | None = None,
        runner: TaskRunner | None = None,
    ) -> None:
        self.settings = settings
        self.client = client or CoordinatorClient(
            base_url=settings.coordinator_url,
            agent_name=settings.agent_name,
            token=settings.token,
            target_id=settings.target_id,
            timeout=settings.request_timeout_seconds,
        )
        self.runner = runner or TaskRunner()
        self.paused = False
        self.poll_interval_seconds = settings.poll_interval_seconds
        self.model = settings.model
        self.tasks_completed = 0
        self.tasks_failed = 0
        self._shutdown_event = asyncio.Event()

    def request_shutdown(self) -> None:
        """Trigger graceful shutdown."""
        self._shutdown_event.set()

    def status_payload(self) -> dict[str, Any]:
        return {
            "agent": self.settings.agent_name,
            "paused": self.paused,
            "model": self.model,
            "poll_interval_seconds": self.poll_interval_seconds,
            "tasks_completed": self.tasks_completed,
            "tasks_failed": self.tasks_failed,
        }

    def apply_command(self, command: Command) -> None:
        params = command.parameters
        if command.action == "pause":
            self.paused = True
        elif command.action == "resume":
            self.paused = False
        elif command.action == "set_poll_interval":
            seconds = params.get("seconds")
            if not isinstance(seconds, (int, float)) or isinstance(seconds, bool) or seconds <= 0:
                logger.warning("agent_command_rejected", extra={"action": command.action, "parameters": params})
                return
            self.poll_interval_seconds = float(seconds)
        elif command.action == "switch_model":
            model = params.get("model")
            if not model:
                logger.warning("agent_command_rejected", extra={"action": command.action, "parameters": params})
                return
            self.model = model
        else:
            logger.warning("agent_command_unknown", extra={"action": command.action})
            return
        logger.info("agent_command_applied", extra={"action": command.action, "parameters": params})

    async def claim_next(self) -> TaskView | None:
        """Claim the best available task, retrying a bounded number of lost races."""
        for attempt in range(1, self.settings.max_claim_attempts + 1):
            task = await self.client.next_task(self.settings.task_type)
            if task is None:
                return None
            if await self.client.claim(task.id):
                return task
            logger.info("agent_claim_lost", extra={"task_id": task.id, "attempt": attempt})
        return None

    async def run_once(self) -> TaskView | None:
        """One poll cycle. Returns the task that was executed, if any."""
        command = await self.client.poll(self.status_payload())
        if command is not None:
            self.apply_command(command)
        if self.paused:
            return None

        task = await self.claim_next()
        if task is None:
            return None

        if not await self.client.start(task.id):
            # Cancelled between claim and start
            logger.warning("agent_start_rejected", extra={"task_id": task.id})
            return None

        outcome = await self.runner.run(task)
        if outcome["success"]:
            await self.client.complete(task.id, outcome["result"])
            self.tasks_completed += 1
            logger.info("agent_task_completed", extra={"task_id": task.id, "task_type": task.type.value})
        else:
            error = f"{outcome['error_code']}: {outcome['error']}"
            await self.client.fail(task.id, error)
            self.tasks_failed += 1
            logger.warning("agent_task_failed", extra={"task_id": task.id, "error": error})
        return task

    async def run(self) -> None:
        """Run the poll loop until shutdown is requested."""
        logger.info(
            "agent_starting",
            extra={"agent": self.settings.agent_name, "coordinator_url": self.settings.coordinator_url},
        )

        try:
            await self.client.register(
                capabilities=self.settings.capabilities or self.runner.supported_types,
                description=self.settings.description,
            )
        except (httpx.HTTPError, OSError) as exc:
            logger.warning("agent_registration_failed", extra={"agent": self.settings.agent_name, "error": str(exc)})

        while not self._shutdown_event.is_set():
            try:
                task = await self.run_once()
                if task is not None:
                    # Drain the queue before sleeping again
                    continue
            except (httpx.HTTPError, OSError) as exc:
                logger.warning("agent_poll_failed", extra={"agent": self.settings.agent_name, "error": str(exc)})
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "agent_loop_error",
                    extra={"agent": self.settings.agent_name, "error": str(exc)},
                    exc_info=True,
                )

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.poll_interval_seconds)
            except asyncio.TimeoutError:
                pass

        await self.client.close()
        logger.info("agent_stopping", extra={"agent": self.settings.agent_name})


async def run_agent(settings: AgentSettings | None = None) -> None:
    """Run the agent until interrupted or asked to stop."""
    service = AgentService(settings=settings or get_agent_settings())
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, service.request_shutdown)
        except NotImplementedError:
            pass

    await service.run()


def main() -> None:
    """CLI entrypoint for the agent runtime."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    asyncio.run(run_agent())


if __name__ == "__main__":
    main()
