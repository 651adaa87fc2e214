"""In-memory registry of dispatched scripts keyed by correlation id."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_EXECUTING = "executing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED})

_ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_EXECUTING, STATUS_COMPLETED, STATUS_FAILED},
    STATUS_EXECUTING: {STATUS_COMPLETED, STATUS_FAILED},
    STATUS_COMPLETED: set(),
    STATUS_FAILED: set(),
}


def new_correlation_id() -> str:
    return uuid4().hex


@dataclass(slots=True)
class ExecutionTask:
    target: str
    script: str
    description: str | None = None
    correlation_id: str = field(default_factory=new_correlation_id)
    status: str = STATUS_PENDING
    created_at: float = field(default_factory=time.time)

    def to_event(self) -> dict[str, Any]:
        """Wire shape shared by the push stream and the pull query."""
        return {
            "correlationId": self.correlation_id,
            "target": self.target,
            "script": self.script,
            "description": self.description,
        }


class CorrelationStore:
    """Thread-safe map of in-flight tasks.

    Status only moves forward (pending -> executing -> completed|failed); every
    read and write goes through the same lock.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, ExecutionTask] = {}
        self._lock = threading.Lock()

    def enqueue(self, task: ExecutionTask) -> bool:
        with self._lock:
            if task.correlation_id in self._tasks:
                logger.error("Correlation id collision, refusing to overwrite task %s", task.correlation_id)
                return False
            self._tasks[task.correlation_id] = task
        logger.info("Enqueued task %s (target=%s, scriptLen=%s)", task.correlation_id, task.target, len(task.script))
        return True

    def get(self, correlation_id: str) -> ExecutionTask | None:
        with self._lock:
            return self._tasks.get(correlation_id)

    def mark_executing(self, correlation_id: str) -> bool:
        return self._transition(correlation_id, STATUS_EXECUTING)

    def mark_resolved(self, correlation_id: str, success: bool) -> bool:
        return self._transition(correlation_id, STATUS_COMPLETED if success else STATUS_FAILED)

    def remove(self, correlation_id: str) -> ExecutionTask | None:
        with self._lock:
            return self._tasks.pop(correlation_id, None)

    def list_pending(self) -> list[ExecutionTask]:
        with self._lock:
            pending = [task for task in self._tasks.values() if task.status == STATUS_PENDING]
        return sorted(pending, key=lambda task: task.created_at)

    def claim_pending(self) -> list[ExecutionTask]:
        """Return pending tasks and move them to `executing` in one step."""
        with self._lock:
            claimed = [task for task in self._tasks.values() if task.status == STATUS_PENDING]
            for task in claimed:
                task.status = STATUS_EXECUTING
        return sorted(claimed, key=lambda task: task.created_at)

    def sweep_expired(self, ttl_seconds: float, *, now: float | None = None) -> int:
        cutoff = (now if now is not None else time.time()) - ttl_seconds
        with self._lock:
            expired = [key for key, task in self._tasks.items() if task.created_at < cutoff]
            for key in expired:
                del self._tasks[key]
        if expired:
            logger.info("Swept %s expired tasks (>%ss).", len(expired), ttl_seconds)
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def _transition(self, correlation_id: str, status: str) -> bool:
        with self._lock:
            task = self._tasks.get(correlation_id)
            if task is None:
                return False
            if status not in _ALLOWED_TRANSITIONS[task.status]:
                return False
            task.status = status
            return True
