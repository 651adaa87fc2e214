import asyncio
from types import SimpleNamespace

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import wait_for_pending


API = "/api/bridge/v1"

SCRIPT = 'body.insertParagraph("Hi", "End");\nawait context.sync();\nreturn { success: true };'


@pytest.fixture
def app_and_bridge(make_bridge):
    from docbridge.main import create_app
    from docbridge.services.bridge import get_bridge

    app = create_app(mount_mcp=False)
    bridge = make_bridge()
    app.dependency_overrides[get_bridge] = lambda: bridge
    return app, bridge


@pytest.fixture
def client(app_and_bridge):
    app, _ = app_and_bridge
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get(f"{API}/health").json() == {"status": "ok"}


@pytest.mark.parametrize(
    "body",
    [
        {"target": "1word", "script": SCRIPT},
        {"target": "word", "script": ""},
        {"script": SCRIPT},
    ],
)
def test_execute_rejects_malformed_requests(client, body):
    assert client.post(f"{API}/execute", json=body).status_code == 422


def test_blocked_execute_answers_without_a_client(client, app_and_bridge):
    _, bridge = app_and_bridge
    script = "\n".join(f"const v{i} = {i};" for i in range(81))
    resp = client.post(f"{API}/execute", json={"target": "word", "script": script})
    assert resp.status_code == 200
    assert resp.json()["status"] == "blocked"
    assert client.get(f"{API}/pending").json() == {"executions": []}
    assert len(bridge.state.store) == 0


def test_result_for_unknown_correlation_id_is_404(client):
    resp = client.post(f"{API}/results", json={"correlationId": "nope", "success": True})
    assert resp.status_code == 404
    assert resp.json()["detail"] == "UNKNOWN_CORRELATION_ID"


def test_malformed_result_submission_is_422(client):
    assert client.post(f"{API}/results", json={"correlationId": "x"}).status_code == 422
    assert client.post(f"{API}/results", json={"success": True}).status_code == 422


def test_pending_claim_and_client_sessions(client, app_and_bridge):
    from docbridge.services.correlation_store import STATUS_EXECUTING, ExecutionTask

    _, bridge = app_and_bridge
    task = ExecutionTask(target="excel", script="return 1;", description="read A1")
    bridge.state.store.enqueue(task)

    listed = client.get(f"{API}/pending", params={"clientId": "pc-1"}).json()
    assert listed["executions"] == [task.to_event()]

    claimed = client.get(f"{API}/pending", params={"clientId": "pc-1", "claim": "true", "mode": "pull"}).json()
    assert [item["correlationId"] for item in claimed["executions"]] == [task.correlation_id]
    assert bridge.state.store.get(task.correlation_id).status == STATUS_EXECUTING
    assert client.get(f"{API}/pending", params={"claim": "true"}).json() == {"executions": []}

    sessions = client.get(f"{API}/clients").json()
    assert sessions["pushSubscribers"] == 0
    assert sessions["items"][0]["clientId"] == "pc-1"
    assert sessions["items"][0]["mode"] == "pull_fallback"


def test_duplicate_result_submission_is_stale(client, app_and_bridge):
    from docbridge.services.correlation_store import ExecutionTask

    _, bridge = app_and_bridge
    task = ExecutionTask(target="word", script="return 1;")
    bridge.state.store.enqueue(task)

    body = {"correlationId": task.correlation_id, "success": False, "error": {"code": "InvalidArgument", "message": "bad"}}
    assert client.post(f"{API}/results", json=body).json() == {"status": "accepted", "correlationId": task.correlation_id}
    assert client.post(f"{API}/results", json=body).json()["status"] == "stale"

    cached = client.get(f"{API}/results/{task.correlation_id}").json()
    assert cached["found"] is True
    assert cached["result"]["success"] is False
    assert cached["result"]["error"]["kind"] == "InvalidArgument"
    assert client.get(f"{API}/results/unknown").json() == {"found": False, "result": None}


def test_cleanup_reports_removed_counts(client, app_and_bridge):
    from docbridge.services.correlation_store import ExecutionTask

    _, bridge = app_and_bridge
    bridge.state.store.enqueue(ExecutionTask(target="word", script="x", created_at=0.0))
    assert client.post(f"{API}/cleanup").json() == {"tasksRemoved": 1, "resultsRemoved": 0}


def test_client_report_is_accepted(client):
    resp = client.post(
        f"{API}/reports",
        json={"sessionId": "s", "target": "word", "generatedCode": "x", "execution": {"success": True}},
    )
    assert resp.json() == {"success": True}


def test_logs_endpoint_lists_recorded_executions(client):
    from docbridge.services.execution_logs import execution_log_service

    log_id = execution_log_service.record(
        target="word",
        fingerprint="fp-api-logs",
        status="failed",
        correlation_id="cid-logs",
        error_kind="InvalidArgument",
        attempt=1,
        max_attempts=3,
        terminal=False,
        gate_metrics={"lines": 3},
    )
    assert log_id is not None

    items = client.get(f"{API}/logs", params={"fingerprint": "fp-api-logs"}).json()["items"]
    assert [item["id"] for item in items] == [log_id]
    assert items[0]["gate_metrics"] == {"lines": 3}
    assert client.get(f"{API}/logs", params={"limit": 0}).status_code == 422


def test_bearer_token_is_enforced_when_configured(client, monkeypatch):
    monkeypatch.setattr("docbridge.deps.auth.get_settings", lambda: SimpleNamespace(service_api_token="secret"))

    missing = client.get(f"{API}/pending")
    assert missing.status_code == 401
    assert missing.json()["detail"] == "AUTHORIZATION_REQUIRED"
    assert client.get(f"{API}/pending", headers={"Authorization": "Bearer wrong"}).json()["detail"] == "INVALID_TOKEN"
    assert client.get(f"{API}/pending", headers={"Authorization": "Bearer secret"}).status_code == 200
    assert client.get(f"{API}/pending", params={"access_token": "secret"}).status_code == 200
    # Liveness stays open.
    assert client.get("/health").status_code == 200


def test_execute_waits_for_a_polling_client(app_and_bridge):
    app, bridge = app_and_bridge

    async def _run():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://bridge.test") as http:
            call = asyncio.create_task(
                http.post(f"{API}/execute", json={"target": "A", "script": SCRIPT, "description": "greet"})
            )
            await wait_for_pending(bridge)
            pending = (await http.get(f"{API}/pending", params={"clientId": "poller", "claim": "true"})).json()
            (task,) = pending["executions"]
            ack = await http.post(
                f"{API}/results",
                json={"correlationId": task["correlationId"], "success": True, "data": {"paragraphs": 1}},
            )
            assert ack.json()["status"] == "accepted"
            return task, (await call).json()

    task, outcome = asyncio.run(_run())
    assert task["target"] == "A"
    assert task["script"] == SCRIPT
    assert outcome["status"] == "completed"
    assert outcome["correlationId"] == task["correlationId"]
    assert outcome["data"] == {"paragraphs": 1}
    assert outcome["advisories"] == []
