"""HTTP API tests against the FastAPI app with in-memory stores."""

from __future__ import annotations

import httpx
import pytest

from coordinator.config import Settings, get_settings
from coordinator.main import app
from coordinator.storage.database import get_db

TOKENS = {
    "clawdinho-token": "Clawdinho",
    "ondinho-token": "Ondinho",
    "bubble-token": "Bubble",
    "mattia-token": "Mattia",
}
BUBBLE = {"Authorization": "Bearer bubble-token"}
ONDINHO = {"Authorization": "Bearer ondinho-token"}
DASHBOARD = {"X-API-Key": "mattia-token"}


@pytest.fixture
def test_settings():
    return Settings(
        sender_tokens=TOKENS,
        known_targets=["mac-mini", "raspberry"],
        rate_limit=3,
        redis_url=None,
    )


@pytest.fixture
async def client(session_maker, store, test_settings):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.state.ephemeral_store = store

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()
    app.state.ephemeral_store = None


async def _enqueue(client, **overrides):
    body = {"type": "content_create", "description": "write a thread", **overrides}
    response = await client.post("/api/tasks", json=body, headers=DASHBOARD)
    assert response.status_code == 200, response.text
    return response.json()


# =============================================================================
# Public endpoints and auth
# =============================================================================

async def test_health_and_root_need_no_auth(client):
    health = await client.get("/api/health")
    root = await client.get("/")

    assert health.status_code == 200
    assert health.json()["ephemeral_store"] == "configured"
    assert root.json()["docs"] == "/docs"


async def test_request_id_is_echoed(client):
    response = await client.get("/api/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Bearer nope"}, {"X-API-Key": "nope"}, {"Authorization": "Basic bubble-token"}],
)
async def test_unknown_identity_gets_401(client, headers):
    response = await client.get("/api/tasks", headers=headers)
    assert response.status_code == 401


async def test_api_key_header_is_accepted(client):
    response = await client.get("/api/tasks/stats", headers=DASHBOARD)
    assert response.status_code == 200


# =============================================================================
# Tasks
# =============================================================================

async def test_enqueue_task(client):
    body = await _enqueue(client, priority="high", payload={"topic": "launch"})

    assert body["id"].startswith("task_")
    assert body["status"] == "pending"
    assert body["task"]["created_by"] == "Mattia"
    assert body["task"]["payload"] == '{"topic": "launch"}'


async def test_enqueue_records_authenticated_sender_as_creator(client):
    body = await _enqueue(client, created_by="Ondinho")

    assert body["task"]["created_by"] == "Mattia"
    stored = (await client.get(f"/api/tasks/{body['id']}", headers=BUBBLE)).json()
    assert stored["created_by"] == "Mattia"


async def test_enqueue_rejects_unknown_type_with_400(client):
    response = await client.post(
        "/api/tasks", json={"type": "make_coffee", "description": "x"}, headers=DASHBOARD
    )
    assert response.status_code == 400


async def test_get_unknown_task_is_404(client):
    response = await client.get("/api/tasks/task_missing", headers=DASHBOARD)
    assert response.status_code == 404


async def test_claim_lifecycle_over_http(client):
    created = await _enqueue(client)
    task_id = created["id"]

    nxt = await client.get("/api/tasks/next", params={"agent": "Bubble"}, headers=BUBBLE)
    assert nxt.json()["task"]["id"] == task_id

    won = await client.post(f"/api/tasks/{task_id}/claim", json={"agent_name": "Bubble"}, headers=BUBBLE)
    lost = await client.post(f"/api/tasks/{task_id}/claim", json={"agent_name": "Ondinho"}, headers=ONDINHO)
    assert won.json() == {"success": True}
    assert lost.json() == {"success": False}

    started = await client.post(f"/api/tasks/{task_id}/start", headers=BUBBLE)
    assert started.json() == {"success": True}

    done = await client.post(f"/api/tasks/{task_id}/complete", json={"result": {"words": 280}}, headers=BUBBLE)
    assert done.json() == {"success": True}

    task = (await client.get(f"/api/tasks/{task_id}", headers=BUBBLE)).json()
    assert task["status"] == "done"
    assert task["assigned_to"] == "Bubble"
    assert task["result"] == '{"words": 280}'

    empty = await client.get("/api/tasks/next", headers=BUBBLE)
    assert empty.json() == {"task": None}


async def test_claim_without_agent_name_is_400(client):
    created = await _enqueue(client)
    response = await client.post(f"/api/tasks/{created['id']}/claim", json={}, headers=BUBBLE)
    assert response.status_code == 400


async def test_fail_and_cancel_over_http(client):
    doomed = await _enqueue(client)
    dropped = await _enqueue(client)
    await client.post(f"/api/tasks/{doomed['id']}/claim", json={"agent_name": "Bubble"}, headers=BUBBLE)

    failed = await client.post(f"/api/tasks/{doomed['id']}/fail", json={"error": "quota"}, headers=BUBBLE)
    cancelled = await client.post(f"/api/tasks/{dropped['id']}/cancel", headers=DASHBOARD)
    cancel_failed = await client.post(f"/api/tasks/{doomed['id']}/cancel", headers=DASHBOARD)

    assert failed.json() == {"success": True}
    assert cancelled.json() == {"success": True}
    assert cancel_failed.json() == {"success": False}


async def test_list_tasks_with_status_filter_and_stats(client):
    first = await _enqueue(client)
    await _enqueue(client)
    await client.post(f"/api/tasks/{first['id']}/claim", json={"agent_name": "Bubble"}, headers=BUBBLE)

    response = await client.get(
        "/api/tasks", params={"status": "claimed,in_progress", "stats": "true"}, headers=DASHBOARD
    )
    body = response.json()

    assert [t["id"] for t in body["tasks"]] == [first["id"]]
    assert body["stats"]["total"] == 2
    assert body["stats"]["in_progress"] == 1
    assert body["stats"]["pending"] == 1


async def test_list_tasks_rejects_unknown_status(client):
    response = await client.get("/api/tasks", params={"status": "sleeping"}, headers=DASHBOARD)
    assert response.status_code == 400
    assert response.json()["field"] == "status"


async def test_reclaim_endpoint(client):
    response = await client.post("/api/tasks/reclaim", json={"lease_seconds": 3600}, headers=DASHBOARD)
    assert response.json() == {"reclaimed": []}

    invalid = await client.post("/api/tasks/reclaim", json={"lease_seconds": 0}, headers=DASHBOARD)
    assert invalid.status_code == 400


# =============================================================================
# Agents, liveness and the command mailbox
# =============================================================================

async def test_register_and_list_agents(client):
    registered = await client.post(
        "/api/agents/register",
        json={"name": "Bubble", "capabilities": ["image_generate"]},
        headers=BUBBLE,
    )
    assert registered.status_code == 200
    assert registered.json()["name"] == "Bubble"

    agents = (await client.get("/api/agents", headers=DASHBOARD)).json()
    assert [a["name"] for a in agents] == ["Bubble"]
    assert agents[0]["status"] == "idle"


async def test_heartbeat_and_presence(client):
    beat = await client.post("/api/agents/heartbeat", headers=BUBBLE)
    assert beat.json()["ok"] is True
    assert beat.json()["sender"] == "Bubble"

    presence = (await client.get("/api/agents/presence", headers=DASHBOARD)).json()
    online = {bot["sender"]: bot["online"] for bot in presence["bots"]}

    assert online == {"Bubble": True, "Clawdinho": False, "Mattia": False, "Ondinho": False}
    assert "server_time" in presence


async def test_command_delivered_once_through_poll(client):
    queued = await client.post(
        "/api/commands",
        json={"target_id": "mac-mini", "action": "set_poll_interval", "parameters": {"seconds": 10}},
        headers=DASHBOARD,
    )
    assert queued.json()["queued"]["action"] == "set_poll_interval"

    first = await client.post(
        "/api/agents/poll",
        json={"target_id": "mac-mini", "status_payload": {"paused": False}},
        headers=BUBBLE,
    )
    second = await client.post("/api/agents/poll", json={"target_id": "mac-mini"}, headers=BUBBLE)

    assert first.json()["pending_command"]["parameters"] == {"seconds": 10}
    assert second.json() == {"ok": True, "pending_command": None}

    status = (await client.get("/api/commands/status", headers=DASHBOARD)).json()
    assert [bot["target_id"] for bot in status["bots"]] == ["mac-mini"]
    assert status["bots"][0]["paused"] is False


async def test_poll_defaults_target_to_sender(client):
    await client.post("/api/commands", json={"target_id": "Bubble", "action": "pause"}, headers=DASHBOARD)

    polled = await client.post("/api/agents/poll", json={}, headers=BUBBLE)
    assert polled.json()["pending_command"]["action"] == "pause"


async def test_commands_without_store_are_500(client):
    app.state.ephemeral_store = None
    response = await client.post(
        "/api/commands", json={"target_id": "mac-mini", "action": "pause"}, headers=DASHBOARD
    )
    assert response.status_code == 500


async def test_poll_without_store_still_records_heartbeat(client):
    app.state.ephemeral_store = None

    polled = await client.post(
        "/api/agents/poll", json={"status_payload": {"paused": False}}, headers=BUBBLE
    )

    assert polled.status_code == 200
    assert polled.json() == {"ok": True, "pending_command": None}

    presence = (await client.get("/api/agents/presence", headers=DASHBOARD)).json()
    online = {bot["sender"]: bot["online"] for bot in presence["bots"]}
    assert online["Bubble"] is True


async def test_command_requires_action(client):
    response = await client.post("/api/commands", json={"target_id": "mac-mini"}, headers=DASHBOARD)
    assert response.status_code == 400


# =============================================================================
# Shared channel
# =============================================================================

async def test_post_message_sets_rate_limit_headers(client):
    response = await client.post(
        "/api/channel/messages", json={"content": "hi @ondinho <b>!</b>"}, headers=BUBBLE
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"]["content"] == "hi @ondinho !"
    assert body["message"]["mentions"] == ["Ondinho"]
    assert response.headers["RateLimit-Limit"] == "3"
    assert response.headers["RateLimit-Remaining"] == "2"


async def test_post_message_rate_limited_with_429(client):
    for i in range(3):
        ok = await client.post("/api/channel/messages", json={"content": f"msg {i}"}, headers=BUBBLE)
        assert ok.status_code == 200

    blocked = await client.post("/api/channel/messages", json={"content": "one more"}, headers=BUBBLE)

    assert blocked.status_code == 429
    assert blocked.headers["RateLimit-Limit"] == "3"
    assert blocked.headers["RateLimit-Remaining"] == "0"
    assert 1 <= int(blocked.headers["Retry-After"]) <= 60
    assert blocked.headers["RateLimit-Reset"] == blocked.headers["Retry-After"]

    other_sender = await client.post("/api/channel/messages", json={"content": "hello"}, headers=ONDINHO)
    assert other_sender.status_code == 200


async def test_post_message_without_store_fails_open(client):
    app.state.ephemeral_store = None
    response = await client.post("/api/channel/messages", json={"content": "hello"}, headers=BUBBLE)

    assert response.status_code == 200
    assert response.headers["RateLimit-Remaining"] == "3"


async def test_post_message_validation(client):
    empty = await client.post("/api/channel/messages", json={"content": "   "}, headers=BUBBLE)
    bad_reply = await client.post(
        "/api/channel/messages", json={"content": "hi", "reply_to": -1}, headers=BUBBLE
    )

    assert empty.status_code == 400
    assert empty.json()["field"] == "content"
    assert bad_reply.status_code == 400
    assert bad_reply.json()["field"] == "reply_to"


async def test_rate_limit_counts_rejected_content_but_not_malformed_json(client):
    for _ in range(2):
        malformed = await client.post(
            "/api/channel/messages",
            content="{not json",
            headers={**BUBBLE, "Content-Type": "application/json"},
        )
        assert malformed.status_code == 400

    first = await client.post("/api/channel/messages", json={"content": "hi"}, headers=BUBBLE)
    assert first.headers["RateLimit-Remaining"] == "2"

    empty = await client.post("/api/channel/messages", json={"content": "   "}, headers=BUBBLE)
    assert empty.status_code == 400

    last = await client.post("/api/channel/messages", json={"content": "again"}, headers=BUBBLE)
    assert last.headers["RateLimit-Remaining"] == "0"


async def test_list_messages(client):
    for text in ["one", "two @Bubble", "three"]:
        await client.post("/api/channel/messages", json={"content": text}, headers=ONDINHO)

    everything = (await client.get("/api/channel/messages", headers=BUBBLE)).json()
    mentioning = (await client.get("/api/channel/messages", params={"mentioning": "Bubble"}, headers=BUBBLE)).json()

    assert [m["content"] for m in everything["messages"]] == ["one", "two @Bubble", "three"]
    assert everything["count"] == 3
    assert [m["content"] for m in mentioning["messages"]] == ["two @Bubble"]
