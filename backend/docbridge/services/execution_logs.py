"""Execution history helpers."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import desc, select

from docbridge.core.db import get_session
from docbridge.models.execution import ExecutionLog


class ExecutionLogService:
    """Stores one row per tool call so failures can be inspected after the fact."""

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    def record(
        self,
        *,
        target: str,
        fingerprint: str,
        status: str,
        correlation_id: str | None = None,
        description: str | None = None,
        error_kind: str | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
        attempt: int | None = None,
        max_attempts: int | None = None,
        terminal: bool | None = None,
        duration_ms: int | None = None,
        gate_level: str | None = None,
        gate_metrics: dict[str, Any] | None = None,
    ) -> int | None:
        try:
            with get_session() as session:
                log = ExecutionLog(
                    correlation_id=correlation_id,
                    target=target,
                    description=description[:512] if description else None,
                    fingerprint=fingerprint,
                    status=status,
                    error_kind=error_kind,
                    error_code=error_code,
                    error_message=error_message,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    terminal=terminal,
                    duration_ms=duration_ms,
                    gate_level=gate_level,
                    gate_metrics=gate_metrics,
                )
                session.add(log)
                session.commit()
                session.refresh(log)
                return log.id
        except Exception as exc:  # pragma: no cover - best effort logging
            self._logger.warning("Failed to record execution log: %s", exc)
            return None

    def list_logs(
        self,
        *,
        target: str | None = None,
        status: str | None = None,
        fingerprint: str | None = None,
        limit: int = 20,
    ) -> list[ExecutionLog]:
        with get_session() as session:
            stmt = select(ExecutionLog)
            if target:
                stmt = stmt.where(ExecutionLog.target == target)
            if status:
                stmt = stmt.where(ExecutionLog.status == status)
            if fingerprint:
                stmt = stmt.where(ExecutionLog.fingerprint == fingerprint)
            stmt = stmt.order_by(desc(ExecutionLog.created_at), desc(ExecutionLog.id)).limit(max(1, min(limit, 200)))
            return session.execute(stmt).scalars().all()


execution_log_service = ExecutionLogService()
