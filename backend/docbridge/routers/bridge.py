"""Bridge routes: tool-call entry point, task delivery and result submission."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from docbridge.core.config import get_settings
from docbridge.deps.auth import require_service_token
from docbridge.schemas import bridge as schemas
from docbridge.schemas import execution_logs as log_schemas
from docbridge.services.bridge import ExecutionBridge, SubmissionStatus, get_bridge
from docbridge.services.execution_logs import execution_log_service
from docbridge.services.transport import SSE_HEADERS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bridge/v1", dependencies=[Depends(require_service_token)])


def to_pending_task(task) -> schemas.PendingTask:
    return schemas.PendingTask(**task.to_event())


@router.post("/execute", response_model=schemas.ToolCallOutcome)
async def execute_script(
    payload: schemas.ExecuteRequest,
    bridge: ExecutionBridge = Depends(get_bridge),
) -> schemas.ToolCallOutcome:
    return await bridge.execute(payload.target, payload.script, payload.description)


@router.get("/task-stream")
async def task_stream(
    request: Request,
    client_id: str = Query(..., min_length=1, max_length=64, alias="clientId"),
    bridge: ExecutionBridge = Depends(get_bridge),
) -> StreamingResponse:
    transport = bridge.state.transport
    subscription = transport.subscribe(client_id)
    return StreamingResponse(
        transport.stream_events(
            subscription,
            heartbeat_interval=get_settings().heartbeat_interval_seconds,
            is_disconnected=request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/pending", response_model=schemas.PendingTaskListResponse)
def list_pending(
    client_id: str | None = Query(default=None, max_length=64, alias="clientId"),
    claim: bool = Query(default=False),
    mode: str | None = Query(default=None, description="`pull` when the client has given up on push."),
    bridge: ExecutionBridge = Depends(get_bridge),
) -> schemas.PendingTaskListResponse:
    tasks = bridge.pending_tasks(client_id, claim=claim, fallback=mode == "pull")
    return schemas.PendingTaskListResponse(executions=[to_pending_task(task) for task in tasks])


@router.post("/results", response_model=schemas.ResultSubmissionResponse)
def submit_result(
    payload: schemas.ResultSubmission,
    bridge: ExecutionBridge = Depends(get_bridge),
) -> schemas.ResultSubmissionResponse:
    error = payload.error
    if isinstance(error, schemas.ErrorPayload):
        error = error.model_dump(exclude_none=True)
    outcome = bridge.submit_result(payload.correlationId, payload.success, payload.data, error)
    if outcome is SubmissionStatus.UNKNOWN:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="UNKNOWN_CORRELATION_ID")
    return schemas.ResultSubmissionResponse(status=outcome.value, correlationId=payload.correlationId)


@router.get("/results/{correlation_id}", response_model=schemas.CachedResultResponse)
def get_cached_result(
    correlation_id: str,
    bridge: ExecutionBridge = Depends(get_bridge),
) -> schemas.CachedResultResponse:
    result = bridge.get_cached_result(correlation_id)
    if result is None:
        return schemas.CachedResultResponse(found=False)
    return schemas.CachedResultResponse(found=True, result=result.to_dict())


@router.post("/cleanup", response_model=schemas.CleanupResponse)
def cleanup(bridge: ExecutionBridge = Depends(get_bridge)) -> schemas.CleanupResponse:
    tasks_removed, results_removed = bridge.sweep_expired()
    return schemas.CleanupResponse(tasksRemoved=tasks_removed, resultsRemoved=results_removed)


@router.get("/clients", response_model=schemas.ClientSessionListResponse)
def list_clients(bridge: ExecutionBridge = Depends(get_bridge)) -> schemas.ClientSessionListResponse:
    return schemas.ClientSessionListResponse(
        pushSubscribers=bridge.state.transport.subscriber_count(),
        items=[schemas.ClientSessionItem(**item) for item in bridge.state.sessions.snapshot()],
    )


@router.post("/reports")
def submit_report(payload: schemas.ClientReport) -> dict:
    execution = payload.execution or {}
    logger.info(
        "Client report session=%s case=%s target=%s success=%s codeLen=%s",
        payload.sessionId,
        payload.testCaseId,
        payload.target,
        execution.get("success"),
        len(payload.generatedCode or ""),
    )
    return {"success": True}


@router.get("/logs", response_model=log_schemas.ExecutionLogListResponse)
def list_execution_logs(
    target: str | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias="status"),
    fingerprint: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=200),
) -> log_schemas.ExecutionLogListResponse:
    items = execution_log_service.list_logs(target=target, status=status_filter, fingerprint=fingerprint, limit=limit)
    return log_schemas.ExecutionLogListResponse(items=[log_schemas.ExecutionLogRead.model_validate(item) for item in items])
