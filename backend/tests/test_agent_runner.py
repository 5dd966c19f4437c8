from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from agent.runner import TaskExecutionError, TaskRunner
from coordinator.storage.models import TaskPriority, TaskStatus, TaskType
from coordinator.tasks.schemas import TaskView


def _task(task_type: TaskType, payload: str | None = None) -> TaskView:
    return TaskView(
        id="task_abc",
        type=task_type,
        description="say hi",
        payload=payload,
        priority=TaskPriority.normal,
        status=TaskStatus.in_progress,
        assigned_to="Bubble",
        created_by="Ondinho",
        created_at=datetime.now(timezone.utc),
    )


def test_runner_acknowledges_agent_message():
    outcome = asyncio.run(TaskRunner().run(_task(TaskType.agent_message, '{"text": "hi"}')))

    assert outcome["success"] is True
    assert outcome["result"]["acknowledged"] is True
    assert outcome["result"]["message"] == {"text": "hi"}
    assert outcome["result"]["from"] == "Ondinho"


def test_runner_answers_agent_request_with_raw_payload():
    outcome = asyncio.run(TaskRunner().run(_task(TaskType.agent_request, "plain text")))

    assert outcome["success"] is True
    assert outcome["result"]["request"] == "plain text"
    assert outcome["result"]["in_reply_to"] == "task_abc"


def test_runner_unsupported_task():
    outcome = asyncio.run(TaskRunner().run(_task(TaskType.image_generate)))

    assert outcome["success"] is False
    assert outcome["error_code"] == "UNSUPPORTED_TASK"
    assert "image_generate" in outcome["error"]


def test_runner_custom_handler_and_errors():
    async def render(task):
        return {"url": "https://example.test/cat.png"}

    async def refuse(task):
        raise TaskExecutionError("prompt rejected", error_code="VALIDATION_ERROR")

    async def crash(task):
        raise RuntimeError("gpu on fire")

    runner = TaskRunner({TaskType.image_generate: render})
    runner.register(TaskType.image_edit, refuse)
    runner.register(TaskType.image_upscale, crash)

    ok = asyncio.run(runner.run(_task(TaskType.image_generate)))
    refused = asyncio.run(runner.run(_task(TaskType.image_edit)))
    crashed = asyncio.run(runner.run(_task(TaskType.image_upscale)))

    assert ok == {"success": True, "error_code": None, "result": {"url": "https://example.test/cat.png"}}
    assert refused["error_code"] == "VALIDATION_ERROR"
    assert crashed["error_code"] == "EXECUTION_ERROR"
    assert crashed["error"] == "gpu on fire"
    assert "image_generate" in runner.supported_types
