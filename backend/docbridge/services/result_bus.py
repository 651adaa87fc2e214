"""One-shot result notifications with a cache-polling fallback."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from docbridge.services.error_classifier import ClassifiedError

logger = logging.getLogger(__name__)


class ResultTimeout(Exception):
    """No result was submitted for a correlation id within the wait window."""

    def __init__(self, correlation_id: str, timeout: float) -> None:
        super().__init__(f"RESULT_TIMEOUT:{correlation_id}")
        self.correlation_id = correlation_id
        self.timeout = timeout


@dataclass(slots=True)
class ExecutionResult:
    success: bool
    data: Any = None
    error: ClassifiedError | None = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "timestamp": self.timestamp}
        if self.success:
            payload["data"] = self.data
        elif self.error is not None:
            payload["error"] = self.error.to_dict()
        return payload


def _resolve(future: asyncio.Future, result: ExecutionResult) -> None:
    if not future.done():
        future.set_result(result)


class ResultNotificationBus:
    """Per-correlation-id wakeups backed by a result cache.

    `submit()` records into the cache first and only then wakes the waiters, so
    a waiter that registers late (or misses its wakeup) still finds the result
    by polling the cache. A correlation id can be recorded only once.
    """

    def __init__(self, poll_interval: float = 0.1) -> None:
        self._poll_interval = poll_interval
        self._results: dict[str, ExecutionResult] = {}
        self._waiters: dict[str, list[asyncio.Future]] = {}
        self._lock = threading.Lock()

    def submit(self, correlation_id: str, result: ExecutionResult) -> bool:
        """Record a result; returns False when one was already recorded."""
        with self._lock:
            if correlation_id in self._results:
                return False
            self._results[correlation_id] = result
            waiters = self._waiters.pop(correlation_id, [])
        for future in waiters:
            # Waiters may live on another loop/thread than the submitter.
            future.get_loop().call_soon_threadsafe(_resolve, future, result)
        return True

    async def await_result(self, correlation_id: str, timeout: float) -> ExecutionResult:
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        with self._lock:
            cached = self._results.get(correlation_id)
            if cached is not None:
                return cached
            self._waiters.setdefault(correlation_id, []).append(future)

        deadline = loop.time() + timeout
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise ResultTimeout(correlation_id, timeout)
                done, _ = await asyncio.wait({future}, timeout=min(self._poll_interval, remaining))
                if done:
                    return future.result()
                cached = self.get(correlation_id)
                if cached is not None:
                    logger.warning("Result for %s picked up by cache polling (wakeup missed).", correlation_id)
                    return cached
        finally:
            self._drop_waiter(correlation_id, future)
            if not future.done():
                future.cancel()

    def get(self, correlation_id: str) -> ExecutionResult | None:
        with self._lock:
            return self._results.get(correlation_id)

    def has_result(self, correlation_id: str) -> bool:
        with self._lock:
            return correlation_id in self._results

    def discard(self, correlation_id: str) -> None:
        with self._lock:
            self._results.pop(correlation_id, None)

    def waiter_count(self, correlation_id: str | None = None) -> int:
        with self._lock:
            if correlation_id is not None:
                return len(self._waiters.get(correlation_id, []))
            return sum(len(items) for items in self._waiters.values())

    def sweep_expired(self, ttl_seconds: float, *, now: float | None = None) -> int:
        cutoff = (now if now is not None else time.time()) - ttl_seconds
        with self._lock:
            expired = [key for key, result in self._results.items() if result.timestamp < cutoff]
            for key in expired:
                del self._results[key]
        if expired:
            logger.info("Swept %s expired results (>%ss).", len(expired), ttl_seconds)
        return len(expired)

    def _drop_waiter(self, correlation_id: str, future: asyncio.Future) -> None:
        with self._lock:
            waiters = self._waiters.get(correlation_id)
            if not waiters:
                return
            if future in waiters:
                waiters.remove(future)
            if not waiters:
                del self._waiters[correlation_id]
