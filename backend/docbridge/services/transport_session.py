"""Per-client delivery mode: push stream with bounded reconnects, then polling."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class TransportMode(str, Enum):
    PUSH_ACTIVE = "push_active"
    PUSH_RECONNECTING = "push_reconnecting"
    PULL_FALLBACK = "pull_fallback"


@dataclass(slots=True)
class TransportSession:
    """State machine `PushActive <-> PushReconnecting(n) -> PullFallback`.

    A new session starts as PushReconnecting(0), i.e. about to open the
    stream. Every failed or dropped connection bumps the counter; an open
    connection resets it. Reaching the limit switches to PullFallback, which
    is terminal for the session.
    """

    client_id: str
    max_reconnect_attempts: int = 3
    mode: TransportMode = TransportMode.PUSH_RECONNECTING
    reconnect_attempts: int = 0
    last_seen: float = field(default_factory=time.time)

    @property
    def uses_push(self) -> bool:
        return self.mode is not TransportMode.PULL_FALLBACK

    def on_push_connected(self) -> TransportMode:
        self.last_seen = time.time()
        if self.mode is TransportMode.PULL_FALLBACK:
            return self.mode
        self.mode = TransportMode.PUSH_ACTIVE
        self.reconnect_attempts = 0
        return self.mode

    def on_push_failure(self) -> TransportMode:
        self.last_seen = time.time()
        if self.mode is TransportMode.PULL_FALLBACK:
            return self.mode
        self.reconnect_attempts += 1
        if self.reconnect_attempts >= self.max_reconnect_attempts:
            self.mode = TransportMode.PULL_FALLBACK
            logger.warning(
                "Client %s: push failed %s times, falling back to polling.",
                self.client_id,
                self.reconnect_attempts,
            )
        else:
            self.mode = TransportMode.PUSH_RECONNECTING
        return self.mode

    def on_pull(self, fallback: bool = False) -> TransportMode:
        """A poll arrived; `fallback=True` means the client already gave up on push."""
        self.last_seen = time.time()
        if fallback:
            self.mode = TransportMode.PULL_FALLBACK
        return self.mode

    def to_dict(self) -> dict[str, Any]:
        return {
            "clientId": self.client_id,
            "mode": self.mode.value,
            "reconnectAttempts": self.reconnect_attempts,
            "lastSeen": self.last_seen,
        }


class SessionRegistry:
    """Server-side view of every client's transport session."""

    def __init__(self, max_reconnect_attempts: int = 3) -> None:
        self._max_reconnect_attempts = max_reconnect_attempts
        self._sessions: dict[str, TransportSession] = {}
        self._lock = threading.Lock()

    def _session(self, client_id: str) -> TransportSession:
        session = self._sessions.get(client_id)
        if session is None:
            session = TransportSession(client_id=client_id, max_reconnect_attempts=self._max_reconnect_attempts)
            self._sessions[client_id] = session
        return session

    def push_connected(self, client_id: str) -> TransportMode:
        with self._lock:
            return self._session(client_id).on_push_connected()

    def push_failed(self, client_id: str) -> TransportMode:
        with self._lock:
            return self._session(client_id).on_push_failure()

    def pulled(self, client_id: str, fallback: bool = False) -> TransportMode:
        with self._lock:
            return self._session(client_id).on_pull(fallback=fallback)

    def get(self, client_id: str) -> TransportSession | None:
        with self._lock:
            return self._sessions.get(client_id)

    def snapshot(self) -> list[dict[str, Any]]:
        with self._lock:
            return [session.to_dict() for session in self._sessions.values()]
