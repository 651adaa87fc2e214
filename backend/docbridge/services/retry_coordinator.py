"""Repair-attempt accounting per script fingerprint, plus in-flight de-duplication."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


def fingerprint(script: str) -> str:
    return hashlib.sha256(script.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class RetryDecision:
    allowed: bool
    attempt_number: int
    max_attempts: int


class RetryCoordinator:
    """Bounds automated repair cycles per distinct script.

    A counter is created on the first failure of a fingerprint and bumped each
    time a repair cycle is granted. It is cleared on success and when the bound
    is hit, so a later unrelated cycle for the same text starts fresh.
    """

    def __init__(self, max_attempts: int = 3) -> None:
        self.max_attempts = max_attempts
        self._attempts: dict[str, int] = {}
        self._lock = threading.Lock()

    def should_retry(self, script_fingerprint: str) -> RetryDecision:
        with self._lock:
            current = self._attempts.get(script_fingerprint, 0)
            if current < self.max_attempts:
                self._attempts[script_fingerprint] = current + 1
                return RetryDecision(allowed=True, attempt_number=current + 1, max_attempts=self.max_attempts)
            self._attempts.pop(script_fingerprint, None)
        logger.info("Repair budget exhausted for fingerprint %s (%s attempts).", script_fingerprint[:12], current)
        return RetryDecision(allowed=False, attempt_number=current, max_attempts=self.max_attempts)

    def record_outcome(self, script_fingerprint: str, success: bool) -> None:
        if not success:
            return
        with self._lock:
            self._attempts.pop(script_fingerprint, None)

    def attempts(self, script_fingerprint: str) -> int:
        with self._lock:
            return self._attempts.get(script_fingerprint, 0)


class InflightTracker:
    """Lets concurrent calls for the same script share one dispatch.

    The first caller for a fingerprint registers a future and owns the
    dispatch; later callers get that future back and await it instead of
    sending the script to the client again.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, tuple[asyncio.Future, str | None]] = {}
        self._lock = threading.Lock()

    def attach_or_register(self, script_fingerprint: str) -> tuple[asyncio.Future, bool]:
        """Return (future, owner). `owner` is True when the caller must dispatch."""
        loop = asyncio.get_running_loop()
        with self._lock:
            existing = self._inflight.get(script_fingerprint)
            if existing is not None and not existing[0].done():
                return existing[0], False
            future = loop.create_future()
            self._inflight[script_fingerprint] = (future, None)
            return future, True

    def bind_correlation(self, script_fingerprint: str, correlation_id: str) -> None:
        with self._lock:
            existing = self._inflight.get(script_fingerprint)
            if existing is not None:
                self._inflight[script_fingerprint] = (existing[0], correlation_id)

    def correlation_for(self, script_fingerprint: str) -> str | None:
        with self._lock:
            existing = self._inflight.get(script_fingerprint)
            return existing[1] if existing else None

    def release(
        self,
        script_fingerprint: str,
        future: asyncio.Future,
        outcome: Any = None,
        error: BaseException | None = None,
    ) -> None:
        with self._lock:
            existing = self._inflight.get(script_fingerprint)
            if existing is not None and existing[0] is future:
                del self._inflight[script_fingerprint]
        if future.done():
            return
        if isinstance(error, asyncio.CancelledError):
            future.cancel()
        elif error is not None:
            future.set_exception(error)
            # Owner never awaits its own future; mark the exception as seen.
            future.exception()
        else:
            future.set_result(outcome)

    def __len__(self) -> int:
        with self._lock:
            return len(self._inflight)
