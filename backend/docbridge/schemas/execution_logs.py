from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class ExecutionLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    correlation_id: str | None = None
    target: str
    description: str | None = None
    fingerprint: str
    status: str
    error_kind: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    attempt: int | None = None
    max_attempts: int | None = None
    terminal: bool | None = None
    duration_ms: int | None = None
    gate_level: str | None = None
    gate_metrics: dict[str, Any] | None = None
    created_at: datetime


class ExecutionLogListResponse(BaseModel):
    items: list[ExecutionLogRead]
