"""Async client for hosts that execute bridge tasks (headless runners, smoke tests)."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Union
from uuid import uuid4

import httpx

from docbridge.services.transport_session import TransportMode, TransportSession

logger = logging.getLogger(__name__)

API_PREFIX = "/api/bridge/v1"

Executor = Callable[[dict[str, Any]], Union[Any, Awaitable[Any]]]


class ScriptExecutionError(Exception):
    """Raised by an executor to report a structured failure back to the bridge."""

    def __init__(self, message: str, *, kind: str | None = None, code: str | None = None, stack_trace: str | None = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.code = code
        self.stack_trace = stack_trace

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message}
        if self.kind:
            payload["kind"] = self.kind
        if self.code:
            payload["code"] = self.code
        if self.stack_trace:
            payload["stackTrace"] = self.stack_trace
        return payload


def parse_sse_line(line: str) -> dict[str, Any] | None:
    """Decode one `data:` line; heartbeats, comments and junk yield None."""
    if not line.startswith("data:"):
        return None
    try:
        payload = json.loads(line[5:].strip())
    except ValueError:
        logger.warning("Dropping malformed stream line: %r", line[:120])
        return None
    return payload if isinstance(payload, dict) else None


class RemoteBridgeClient:
    """Receives tasks over the push stream, falls back to polling, reports results.

    The push stream is retried up to `max_reconnect_attempts` times in a row;
    after that the client polls `/pending` for the rest of its life.
    """

    def __init__(
        self,
        base_url: str,
        executor: Executor,
        *,
        client_id: str | None = None,
        token: str | None = None,
        max_reconnect_attempts: int = 3,
        reconnect_delay: float = 1.0,
        pull_interval: float = 0.15,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.client_id = client_id or f"py-{uuid4().hex[:8]}"
        self.session = TransportSession(client_id=self.client_id, max_reconnect_attempts=max_reconnect_attempts)
        self._executor = executor
        self._reconnect_delay = reconnect_delay
        self._pull_interval = pull_interval
        headers = {"Authorization": f"Bearer {token}"} if token else None
        self._http = http_client or httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=None)
        if http_client is not None and headers:
            self._http.headers.update(headers)
        self._seen: set[str] = set()

    @property
    def mode(self) -> TransportMode:
        return self.session.mode

    async def aclose(self) -> None:
        await self._http.aclose()

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        stop_event = stop_event or asyncio.Event()
        logger.info("Bridge client %s started.", self.client_id)
        while not stop_event.is_set():
            if self.session.uses_push:
                await self.listen_once()
                if self.session.uses_push:
                    await self._sleep(stop_event, self._reconnect_delay)
            else:
                try:
                    await self.poll_once()
                except httpx.HTTPError as exc:
                    logger.warning("Poll failed for %s: %s", self.client_id, exc)
                await self._sleep(stop_event, self._pull_interval)

    async def listen_once(self) -> TransportMode:
        """Hold one push connection until it ends; any end counts as a failure."""
        try:
            async with self._http.stream(
                "GET",
                f"{API_PREFIX}/task-stream",
                params={"clientId": self.client_id},
                headers={"Accept": "text/event-stream"},
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    event = parse_sse_line(line)
                    if event is None:
                        continue
                    if event.get("type") == "connected":
                        self.session.on_push_connected()
                        logger.info("Push stream open for %s.", self.client_id)
                    elif event.get("type") == "task":
                        await self.handle_task(event)
        except httpx.HTTPError as exc:
            logger.warning("Push stream error for %s: %s", self.client_id, exc)
        return self.session.on_push_failure()

    async def poll_once(self) -> int:
        """Claim pending tasks and run them; returns how many were handled."""
        params: dict[str, Any] = {"clientId": self.client_id, "claim": "true"}
        if self.session.mode is TransportMode.PULL_FALLBACK:
            params["mode"] = "pull"
        response = await self._http.get(f"{API_PREFIX}/pending", params=params)
        response.raise_for_status()
        self.session.on_pull(fallback=self.session.mode is TransportMode.PULL_FALLBACK)
        handled = 0
        for task in response.json().get("executions", []):
            if await self.handle_task(task):
                handled += 1
        return handled

    async def handle_task(self, task: dict[str, Any]) -> bool:
        correlation_id = task.get("correlationId")
        if not correlation_id or correlation_id in self._seen:
            return False
        self._seen.add(correlation_id)
        logger.info("Executing task %s (target=%s).", correlation_id, task.get("target"))
        try:
            data = self._executor(task)
            if inspect.isawaitable(data):
                data = await data
        except ScriptExecutionError as exc:
            await self.submit_result(correlation_id, False, error=exc.to_payload())
        except Exception as exc:
            await self.submit_result(correlation_id, False, error={"name": type(exc).__name__, "message": str(exc)})
        else:
            await self.submit_result(correlation_id, True, data=data)
        return True

    async def submit_result(
        self,
        correlation_id: str,
        success: bool,
        data: Any = None,
        error: dict[str, Any] | str | None = None,
    ) -> dict[str, Any] | None:
        body: dict[str, Any] = {"correlationId": correlation_id, "success": success}
        if success:
            body["data"] = data
        else:
            body["error"] = error
        try:
            response = await self._http.post(f"{API_PREFIX}/results", json=body)
        except httpx.HTTPError as exc:
            logger.warning("Submitting result for %s failed: %s", correlation_id, exc)
            return None
        if response.status_code == 404:
            logger.warning("Bridge no longer knows task %s (expired or timed out).", correlation_id)
            return None
        if response.status_code >= 400:
            logger.warning("Result for %s rejected: status=%s body=%r", correlation_id, response.status_code, response.text[:300])
            return None
        return response.json()

    @staticmethod
    async def _sleep(stop_event: asyncio.Event, delay: float) -> None:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
