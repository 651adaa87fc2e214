"""Task delivery to attached clients: push stream with heartbeat, pull query as fallback."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable

from docbridge.services.correlation_store import CorrelationStore, ExecutionTask
from docbridge.services.transport_session import SessionRegistry

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    # Disable nginx response buffering.
    "X-Accel-Buffering": "no",
}


def format_sse_event(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def format_heartbeat() -> str:
    return f": heartbeat {int(time.time() * 1000)}\n\n"


@dataclass(eq=False)
class PushSubscription:
    client_id: str
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)

    def offer(self, task: ExecutionTask) -> None:
        self.loop.call_soon_threadsafe(self.queue.put_nowait, task)


class DeliveryTransport:
    """Fans new tasks out to push subscribers; the store itself backs the pull path.

    `dispatch()` is best effort: a task nobody receives over push stays
    `pending` in the store and is picked up by the next poll.
    """

    def __init__(self, store: CorrelationStore, sessions: SessionRegistry) -> None:
        self._store = store
        self._sessions = sessions
        self._subscriptions: list[PushSubscription] = []
        self._lock = threading.Lock()

    def subscribe(self, client_id: str) -> PushSubscription:
        subscription = PushSubscription(client_id=client_id, loop=asyncio.get_running_loop())
        with self._lock:
            self._subscriptions.append(subscription)
        self._sessions.push_connected(client_id)
        logger.info("Push client %s connected (%s active).", client_id, self.subscriber_count())
        return subscription

    def unsubscribe(self, subscription: PushSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def dispatch(self, task: ExecutionTask) -> int:
        """Offer a task to every push subscriber; returns how many were reached."""
        with self._lock:
            subscriptions = list(self._subscriptions)
        delivered = 0
        for subscription in subscriptions:
            try:
                subscription.offer(task)
                delivered += 1
            except RuntimeError as exc:
                # Event loop of a dead connection already closed.
                logger.warning("Push to client %s failed: %s", subscription.client_id, exc)
                self.unsubscribe(subscription)
        if not delivered:
            logger.info("No push client attached; task %s left for polling.", task.correlation_id)
        return delivered

    def list_pending(
        self,
        client_id: str | None = None,
        *,
        claim: bool = False,
        fallback: bool = False,
    ) -> list[ExecutionTask]:
        if client_id:
            self._sessions.pulled(client_id, fallback=fallback)
        if claim:
            return self._store.claim_pending()
        return self._store.list_pending()

    async def stream_events(
        self,
        subscription: PushSubscription,
        heartbeat_interval: float,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[str]:
        """SSE body: `connected`, then `task` events, heartbeat comments in between."""
        client_id = subscription.client_id
        try:
            yield format_sse_event({"type": "connected", "clientId": client_id, "timestamp": int(time.time() * 1000)})
            while True:
                if is_disconnected is not None and await is_disconnected():
                    break
                try:
                    task = await asyncio.wait_for(subscription.queue.get(), timeout=heartbeat_interval)
                except asyncio.TimeoutError:
                    yield format_heartbeat()
                    continue
                # Claim before sending; only one stream or poller wins a task.
                if not self._store.mark_executing(task.correlation_id):
                    continue
                yield format_sse_event({"type": "task", **task.to_event(), "timestamp": int(time.time() * 1000)})
                logger.info("Pushed task %s (%s) to client %s", task.correlation_id, task.target, client_id)
        finally:
            # Any end of the stream counts as a dropped push connection for the session.
            self.unsubscribe(subscription)
            self._sessions.push_failed(client_id)
            logger.info("Push client %s disconnected, resources released.", client_id)
