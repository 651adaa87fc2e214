import asyncio
import json

import httpx


def _sse(*events) -> bytes:
    chunks = [": heartbeat 1\n\n"]
    chunks += [f"data: {json.dumps(event)}\n\n" for event in events]
    return "".join(chunks).encode("utf-8")


class _FakeBridge:
    """Minimal stand-in for the bridge routes, recording what the client sends."""

    def __init__(self, *, stream_status: int = 200, stream_events=(), pending=()):
        self.stream_status = stream_status
        self.stream_events = list(stream_events)
        self.pending = list(pending)
        self.stream_calls = 0
        self.pending_params = []
        self.results = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/task-stream"):
            self.stream_calls += 1
            if self.stream_status != 200:
                return httpx.Response(self.stream_status, text="unavailable")
            return httpx.Response(200, content=_sse(*self.stream_events), headers={"content-type": "text/event-stream"})
        if path.endswith("/pending"):
            self.pending_params.append(dict(request.url.params))
            return httpx.Response(200, json={"executions": self.pending})
        if path.endswith("/results"):
            body = json.loads(request.content)
            self.results.append(body)
            return httpx.Response(200, json={"status": "accepted", "correlationId": body["correlationId"]})
        return httpx.Response(404, json={"detail": "Not Found"})


def _client(fake, executor, **kwargs):
    from docbridge.client import RemoteBridgeClient

    http = httpx.AsyncClient(transport=httpx.MockTransport(fake.handler), base_url="http://bridge.test")
    return RemoteBridgeClient("http://bridge.test", executor, client_id="cli-1", http_client=http, **kwargs)


def test_parse_sse_line_ignores_comments_and_junk():
    from docbridge.client.remote_client import parse_sse_line

    assert parse_sse_line(": heartbeat 1") is None
    assert parse_sse_line("") is None
    assert parse_sse_line("data: not-json") is None
    assert parse_sse_line('data: {"type": "task"}') == {"type": "task"}


def test_push_stream_task_is_executed_and_reported():
    from docbridge.services.transport_session import TransportMode

    task = {"type": "task", "correlationId": "c1", "target": "word", "script": "return 1;", "description": None}
    fake = _FakeBridge(stream_events=[{"type": "connected", "clientId": "cli-1"}, task])

    async def executor(item):
        return {"echo": item["target"]}

    async def _run():
        client = _client(fake, executor)
        mode = await client.listen_once()
        await client.aclose()
        return client, mode

    client, mode = asyncio.run(_run())
    assert fake.results == [{"correlationId": "c1", "success": True, "data": {"echo": "word"}}]
    # The stream ended, which counts as one dropped connection after a successful open.
    assert mode is TransportMode.PUSH_RECONNECTING
    assert client.session.reconnect_attempts == 1


def test_three_push_failures_switch_to_polling_and_pending_task_still_runs():
    from docbridge.client import ScriptExecutionError
    from docbridge.services.transport_session import TransportMode

    pending = [{"correlationId": "c9", "target": "excel", "script": "x", "description": None}]
    fake = _FakeBridge(stream_status=503, pending=pending)

    def executor(item):
        raise ScriptExecutionError("Sheet missing", kind="InvalidReference", code="ItemNotFound")

    async def _run():
        client = _client(fake, executor, max_reconnect_attempts=3)
        modes = [await client.listen_once() for _ in range(3)]
        handled = await client.poll_once()
        # Seen ids are not executed twice.
        handled_again = await client.poll_once()
        await client.aclose()
        return client, modes, handled, handled_again

    client, modes, handled, handled_again = asyncio.run(_run())
    assert modes == [TransportMode.PUSH_RECONNECTING, TransportMode.PUSH_RECONNECTING, TransportMode.PULL_FALLBACK]
    assert client.mode is TransportMode.PULL_FALLBACK
    assert (handled, handled_again) == (1, 0)
    assert fake.pending_params[0] == {"clientId": "cli-1", "claim": "true", "mode": "pull"}
    assert fake.results == [
        {
            "correlationId": "c9",
            "success": False,
            "error": {"message": "Sheet missing", "kind": "InvalidReference", "code": "ItemNotFound"},
        }
    ]


def test_run_loop_fails_over_and_stops_on_event():
    from docbridge.services.transport_session import TransportMode

    pending = [{"correlationId": "c5", "target": "word", "script": "x", "description": None}]
    fake = _FakeBridge(stream_status=502, pending=pending)

    async def _run():
        stop = asyncio.Event()

        def executor(item):
            stop.set()
            raise ValueError("boom")

        client = _client(fake, executor, max_reconnect_attempts=2, reconnect_delay=0, pull_interval=0.01)
        await asyncio.wait_for(client.run(stop), timeout=2)
        await client.aclose()
        return client

    client = asyncio.run(_run())
    assert fake.stream_calls == 2
    assert client.mode is TransportMode.PULL_FALLBACK
    assert fake.results == [{"correlationId": "c5", "success": False, "error": {"name": "ValueError", "message": "boom"}}]
