from typing import Any, Literal

from pydantic import BaseModel, Field

from docbridge.services.error_classifier import ErrorKind


TARGET_PATTERN = r"^[A-Za-z][A-Za-z0-9_-]{0,31}$"


class ExecuteRequest(BaseModel):
    target: str = Field(..., pattern=TARGET_PATTERN)
    script: str = Field(..., min_length=1)
    description: str | None = Field(default=None, max_length=512)


class ToolCallOutcome(BaseModel):
    """Envelope returned to the orchestrator for every tool call."""

    success: bool
    status: Literal["completed", "failed", "blocked", "timeout"]
    correlationId: str | None = None
    data: Any = None
    advisories: list[str] = Field(default_factory=list)
    hints: list[str] = Field(default_factory=list)
    kind: ErrorKind | None = None
    message: str | None = None
    code: str | None = None
    remediation: str | None = None
    attempt: int | None = None
    maxAttempts: int | None = None
    terminal: bool = False
    durationMs: int | None = None


class ErrorPayload(BaseModel):
    kind: str | None = None
    type: str | None = None
    name: str | None = None
    code: str | None = None
    message: str | None = None
    stackTrace: str | None = None
    debugInfo: Any = None


class ResultSubmission(BaseModel):
    correlationId: str = Field(..., min_length=1, max_length=64)
    success: bool
    data: Any = None
    error: ErrorPayload | str | None = None


class ResultSubmissionResponse(BaseModel):
    status: Literal["accepted", "stale"]
    correlationId: str


class PendingTask(BaseModel):
    correlationId: str
    target: str
    script: str
    description: str | None = None


class PendingTaskListResponse(BaseModel):
    executions: list[PendingTask]


class CachedResultResponse(BaseModel):
    found: bool
    result: dict[str, Any] | None = None


class CleanupResponse(BaseModel):
    tasksRemoved: int
    resultsRemoved: int


class ClientSessionItem(BaseModel):
    clientId: str
    mode: str
    reconnectAttempts: int
    lastSeen: float


class ClientSessionListResponse(BaseModel):
    pushSubscribers: int
    items: list[ClientSessionItem]


class ClientReport(BaseModel):
    sessionId: str | None = None
    testCaseId: str | None = None
    target: str | None = None
    userInput: str | None = None
    generatedCode: str | None = None
    execution: dict[str, Any] | None = None
    timestamp: str | None = None
