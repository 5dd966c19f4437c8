"""Task dispatch for the agent runtime.

Handlers are registered per TaskType. A task whose type has no handler fails
with UNSUPPORTED_TASK instead of being silently completed.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from coordinator.storage.models import TaskType
from coordinator.tasks.schemas import TaskView

logger = logging.getLogger(__name__)

TaskHandler = Callable[[TaskView], Awaitable[Any]]


class TaskExecutionError(Exception):
    """Raised by a handler to fail a task with a specific error code."""

    def __init__(self, message: str, error_code: str = "EXECUTION_ERROR"):
        super().__init__(message)
        self.error_code = error_code


def decode_payload(task: TaskView) -> Any:
    """Parse a JSON payload blob, falling back to the raw text."""
    if task.payload is None:
        return None
    try:
        return json.loads(task.payload)
    except ValueError:
        return task.payload


async def acknowledge_message(task: TaskView) -> dict[str, Any]:
    return {
        "acknowledged": True,
        "from": task.created_by,
        "message": decode_payload(task) or task.description,
        "received_at": datetime.now(timezone.utc).isoformat(),
    }


async def answer_request(task: TaskView) -> dict[str, Any]:
    request = decode_payload(task)
    if isinstance(request, dict) and not request.get("question", True):
        raise TaskExecutionError("request has an empty question", error_code="VALIDATION_ERROR")
    return {
        "type": TaskType.agent_response.value,
        "in_reply_to": task.id,
        "to": task.created_by,
        "request": request,
    }


class TaskRunner:
    """Routes tasks to registered handlers."""

    def __init__(self, handlers: dict[TaskType, TaskHandler] | None = None) -> None:
        self._handlers: dict[TaskType, TaskHandler] = {
            TaskType.agent_message: acknowledge_message,
            TaskType.agent_request: answer_request,
        }
        if handlers:
            self._handlers.update(handlers)

    def register(self, task_type: TaskType, handler: TaskHandler) -> None:
        self._handlers[task_type] = handler

    @property
    def supported_types(self) -> list[str]:
        return sorted(task_type.value for task_type in self._handlers)

    async def run(self, task: TaskView) -> dict[str, Any]:
        handler = self._handlers.get(task.type)
        if handler is None:
            return {
                "success": False,
                "error_code": "UNSUPPORTED_TASK",
                "error": f"Unsupported task type: {task.type.value}",
            }

        try:
            result = await handler(task)
        except TaskExecutionError as exc:
            return {"success": False, "error_code": exc.error_code, "error": str(exc)}
        except TimeoutError as exc:
            return {"success": False, "error_code": "TIMEOUT_ERROR", "error": str(exc) or "handler timed out"}
        except Exception as exc:  # noqa: BLE001
            logger.exception("task_handler_crashed", extra={"task_id": task.id, "task_type": task.type.value})
            return {"success": False, "error_code": "EXECUTION_ERROR", "error": str(exc) or type(exc).__name__}

        return {"success": True, "error_code": None, "result": result}
