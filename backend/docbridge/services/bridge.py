"""Remote execution bridge: the tool-call entry point and result submission."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any

from fastapi.concurrency import run_in_threadpool

from docbridge.core.config import Settings, get_settings
from docbridge.schemas.bridge import ToolCallOutcome
from docbridge.services.correlation_store import CorrelationStore, ExecutionTask
from docbridge.services.error_classifier import (
    REMEDIATION_GUIDES,
    ClassifiedError,
    ErrorKind,
    build_feedback,
    build_terminal_report,
    classify,
    is_retryable,
)
from docbridge.services.execution_logs import ExecutionLogService, execution_log_service
from docbridge.services.result_bus import ExecutionResult, ResultNotificationBus, ResultTimeout
from docbridge.services.retry_coordinator import InflightTracker, RetryCoordinator, fingerprint
from docbridge.services.risk_gate import GateThresholds, RiskAssessment, RiskGate
from docbridge.services.transport import DeliveryTransport
from docbridge.services.transport_session import SessionRegistry

logger = logging.getLogger(__name__)

_READ_TASK_RE = re.compile(r"\b(read|get|fetch|list|inspect|view|query)\b", re.IGNORECASE)


class SubmissionStatus(str, Enum):
    ACCEPTED = "accepted"
    STALE = "stale"
    UNKNOWN = "unknown"


@dataclass
class BridgeState:
    """Process-wide stores shared by every component and every request."""

    store: CorrelationStore
    results: ResultNotificationBus
    retries: RetryCoordinator
    inflight: InflightTracker
    sessions: SessionRegistry
    transport: DeliveryTransport
    gate: RiskGate


def build_bridge_state(settings: Settings) -> BridgeState:
    store = CorrelationStore()
    sessions = SessionRegistry(max_reconnect_attempts=settings.push_max_reconnect_attempts)
    return BridgeState(
        store=store,
        results=ResultNotificationBus(poll_interval=settings.result_poll_interval_seconds),
        retries=RetryCoordinator(max_attempts=settings.max_repair_attempts),
        inflight=InflightTracker(),
        sessions=sessions,
        transport=DeliveryTransport(store, sessions),
        gate=RiskGate(
            GateThresholds(
                warn_lines=settings.gate_warn_lines,
                warn_mutations=settings.gate_warn_mutations,
                block_lines=settings.gate_block_lines,
                block_mutations=settings.gate_block_mutations,
            )
        ),
    )


class ExecutionBridge:
    def __init__(
        self,
        state: BridgeState,
        settings: Settings,
        log_service: ExecutionLogService | None = None,
    ) -> None:
        self.state = state
        self._settings = settings
        self._log_service = log_service

    async def execute(self, target: str, script: str, description: str | None = None) -> ToolCallOutcome:
        """Gate, dispatch and wait for one script; failures come back as an outcome envelope."""
        started = time.monotonic()
        script_fp = fingerprint(script)
        assessment = self.state.gate.assess(script)
        logger.info(
            "Execute request target=%s lines=%s mutations=%s level=%s",
            target,
            assessment.metrics.lines,
            assessment.metrics.mutation_calls,
            assessment.level,
        )
        if assessment.blocked:
            logger.warning("Blocked script for %s: %s", target, "; ".join(assessment.issues))
            outcome = ToolCallOutcome(
                success=False,
                status="blocked",
                message="Script is too complex to execute in one step.",
                remediation=self.state.gate.block_guidance(assessment),
                advisories=list(assessment.issues),
                terminal=True,
            )
            await self._record(target, description, script_fp, outcome, assessment)
            return outcome

        shared, owner = self.state.inflight.attach_or_register(script_fp)
        if not owner:
            logger.info(
                "Identical script already in flight (%s); attaching instead of dispatching again.",
                self.state.inflight.correlation_for(script_fp),
            )
            return await asyncio.shield(shared)

        try:
            outcome = await self._dispatch_and_wait(target, script, description, script_fp, assessment)
        except BaseException as exc:
            self.state.inflight.release(script_fp, shared, error=exc)
            raise
        outcome.durationMs = int((time.monotonic() - started) * 1000)
        self.state.inflight.release(script_fp, shared, outcome=outcome)
        await self._record(target, description, script_fp, outcome, assessment)
        return outcome

    async def _dispatch_and_wait(
        self,
        target: str,
        script: str,
        description: str | None,
        script_fp: str,
        assessment: RiskAssessment,
    ) -> ToolCallOutcome:
        self.sweep_expired()

        task = ExecutionTask(target=target, script=script, description=description)
        if not self.state.store.enqueue(task):
            return ToolCallOutcome(
                success=False,
                status="failed",
                kind=ErrorKind.UNKNOWN,
                message="CORRELATION_ID_COLLISION",
                terminal=True,
            )
        self.state.inflight.bind_correlation(script_fp, task.correlation_id)
        self.state.transport.dispatch(task)

        try:
            result = await self.state.results.await_result(
                task.correlation_id,
                self._settings.result_timeout_seconds,
            )
        except ResultTimeout:
            logger.warning(
                "Execution timed out after %ss, correlationId=%s",
                self._settings.result_timeout_seconds,
                task.correlation_id,
            )
            self.state.store.remove(task.correlation_id)
            return self._timeout_outcome(task.correlation_id)

        if result.success:
            return self._success_outcome(task, result, script_fp, assessment)
        return self._failure_outcome(task, result, script_fp)

    def submit_result(
        self,
        correlation_id: str,
        success: bool,
        data: Any = None,
        error: Any = None,
    ) -> SubmissionStatus:
        task = self.state.store.get(correlation_id)
        if task is None:
            logger.warning("Result for unknown correlationId %s", correlation_id)
            return SubmissionStatus.UNKNOWN
        result = ExecutionResult(
            success=success,
            data=data if success else None,
            error=None if success else classify(error),
        )
        if not self.state.results.submit(correlation_id, result):
            logger.warning("Stale result for %s ignored (already resolved).", correlation_id)
            return SubmissionStatus.STALE
        self.state.store.mark_resolved(correlation_id, success)
        logger.info("Result accepted for %s, success=%s", correlation_id, success)
        return SubmissionStatus.ACCEPTED

    def get_cached_result(self, correlation_id: str) -> ExecutionResult | None:
        return self.state.results.get(correlation_id)

    def pending_tasks(
        self,
        client_id: str | None = None,
        *,
        claim: bool = False,
        fallback: bool = False,
    ) -> list[ExecutionTask]:
        return self.state.transport.list_pending(client_id, claim=claim, fallback=fallback)

    def sweep_expired(self) -> tuple[int, int]:
        ttl = self._settings.task_ttl_seconds
        return self.state.store.sweep_expired(ttl), self.state.results.sweep_expired(ttl)

    def _success_outcome(
        self,
        task: ExecutionTask,
        result: ExecutionResult,
        script_fp: str,
        assessment: RiskAssessment,
    ) -> ToolCallOutcome:
        self.state.retries.record_outcome(script_fp, True)
        # Advisories carry gate findings only; the missing-data note is a hint.
        advisories = list(assessment.issues) if assessment.warned else []
        hints = []
        if result.data is None:
            if task.description and _READ_TASK_RE.search(task.description):
                hints.append(
                    "This looks like a read operation but no data was returned; "
                    "return the values after context.sync() and call the tool again."
                )
            else:
                hints.append("No data was returned; return values after context.sync() if the agent needs them.")
        logger.info("Execution succeeded, correlationId=%s", task.correlation_id)
        return ToolCallOutcome(
            success=True,
            status="completed",
            correlationId=task.correlation_id,
            data=result.data,
            advisories=advisories,
            hints=hints,
        )

    def _failure_outcome(self, task: ExecutionTask, result: ExecutionResult, script_fp: str) -> ToolCallOutcome:
        error = result.error or classify(None)
        logger.info(
            "Execution failed, correlationId=%s kind=%s message=%s",
            task.correlation_id,
            error.kind.value,
            error.message,
        )
        if not is_retryable(error.kind):
            return self._terminal_outcome(task.correlation_id, error, attempts=None)

        decision = self.state.retries.should_retry(script_fp)
        if not decision.allowed:
            return self._terminal_outcome(task.correlation_id, error, attempts=decision.attempt_number)
        return ToolCallOutcome(
            success=False,
            status="failed",
            correlationId=task.correlation_id,
            kind=error.kind,
            message=error.message,
            code=error.code,
            remediation=build_feedback(error, task.script, decision.attempt_number, decision.max_attempts),
            attempt=decision.attempt_number,
            maxAttempts=decision.max_attempts,
        )

    def _terminal_outcome(
        self,
        correlation_id: str,
        error: ClassifiedError,
        attempts: int | None,
    ) -> ToolCallOutcome:
        message = error.message
        if attempts is not None:
            message = build_terminal_report(error, attempts)
        return ToolCallOutcome(
            success=False,
            status="failed",
            correlationId=correlation_id,
            kind=error.kind,
            message=message,
            code=error.code,
            attempt=attempts,
            maxAttempts=self.state.retries.max_attempts if attempts is not None else None,
            terminal=True,
        )

    def _timeout_outcome(self, correlation_id: str) -> ToolCallOutcome:
        return ToolCallOutcome(
            success=False,
            status="timeout",
            correlationId=correlation_id,
            kind=ErrorKind.TIMEOUT,
            message=f"No client reported a result within {self._settings.result_timeout_seconds:g}s.",
            advisories=list(REMEDIATION_GUIDES[ErrorKind.TIMEOUT].techniques),
            terminal=True,
        )

    async def _record(
        self,
        target: str,
        description: str | None,
        script_fp: str,
        outcome: ToolCallOutcome,
        assessment: RiskAssessment,
    ) -> None:
        if self._log_service is None:
            return
        # Blocking database write; keep it off the event loop.
        await run_in_threadpool(
            self._log_service.record,
            target=target,
            fingerprint=script_fp,
            status=outcome.status,
            correlation_id=outcome.correlationId,
            description=description,
            error_kind=outcome.kind.value if outcome.kind else None,
            error_code=outcome.code,
            error_message=None if outcome.success else outcome.message,
            attempt=outcome.attempt,
            max_attempts=outcome.maxAttempts,
            terminal=outcome.terminal,
            duration_ms=outcome.durationMs,
            gate_level=assessment.level,
            gate_metrics=assessment.metrics.to_dict(),
        )


@lru_cache
def get_bridge() -> ExecutionBridge:
    settings = get_settings()
    return ExecutionBridge(build_bridge_state(settings), settings, log_service=execution_log_service)
