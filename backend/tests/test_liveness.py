"""Tests for heartbeats, presence and the agent registry."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from coordinator.agents.liveness import is_online, presence_snapshot, record_heartbeat
from coordinator.agents.registry import list_agents, register_agent
from coordinator.storage.models import AgentStatus, Heartbeat, TaskType
from coordinator.tasks.service import claim_task, enqueue_task

KNOWN = ["Clawdinho", "Ondinho", "Bubble"]


def test_is_online_threshold():
    now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    assert is_online(now - timedelta(minutes=4), now) is True
    assert is_online(now - timedelta(minutes=6), now) is False
    assert is_online(now - timedelta(minutes=5), now) is False
    assert is_online(None, now) is False


async def test_first_heartbeat_creates_record(db):
    last_seen = await record_heartbeat(db, "Bubble")

    row = await db.get(Heartbeat, "Bubble")
    assert row is not None
    assert last_seen.tzinfo is not None


async def test_heartbeat_upserts_single_row(db):
    await record_heartbeat(db, "Bubble")
    second = await record_heartbeat(db, "Bubble")

    snapshot = await presence_snapshot(db, ["Bubble"], now=second + timedelta(seconds=1))
    assert len(snapshot) == 1
    assert snapshot[0].last_seen == second


async def test_presence_reports_online_and_offline(db):
    seen = await record_heartbeat(db, "Bubble")

    four_minutes = await presence_snapshot(db, KNOWN, now=seen + timedelta(minutes=4))
    six_minutes = await presence_snapshot(db, KNOWN, now=seen + timedelta(minutes=6))

    assert [entry.sender for entry in four_minutes] == KNOWN
    by_sender = {entry.sender: entry for entry in four_minutes}
    assert by_sender["Bubble"].online is True
    assert by_sender["Ondinho"].online is False
    assert by_sender["Ondinho"].last_seen is None
    assert all(entry.online is False for entry in six_minutes)


async def test_register_agent_is_upsert(db):
    first = await register_agent(db, name="Bubble", capabilities=["image_generate"])
    second = await register_agent(db, name="Bubble", capabilities=["image_edit"], description="art bot")

    assert first.id == second.id
    assert second.capabilities == ["image_edit"]
    assert second.description == "art bot"


async def test_list_agents_derives_status(db):
    await register_agent(db, name="Bubble")
    await register_agent(db, name="Ondinho")
    await register_agent(db, name="Clawdinho")

    task = await enqueue_task(db, task_type=TaskType.code_review, description="review")
    await claim_task(db, task.id, "Clawdinho")

    now = datetime.now(timezone.utc)
    agents = {a.name: a for a in await list_agents(db, now=now)}
    assert agents["Clawdinho"].status == AgentStatus.active
    assert agents["Bubble"].status == AgentStatus.idle

    later = await list_agents(db, now=now + timedelta(minutes=10))
    assert {a.status for a in later} == {AgentStatus.offline}


async def test_heartbeat_refreshes_registered_agent(db):
    await register_agent(db, name="Bubble")
    beat = await record_heartbeat(db, "Bubble")

    agents = await list_agents(db, now=beat + timedelta(minutes=4))
    assert agents[0].status == AgentStatus.idle
    assert agents[0].last_seen == beat
