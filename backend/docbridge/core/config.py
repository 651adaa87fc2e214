"""Service configuration loaded from the environment and backend/.env."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Ignore unknown env keys so stale deployments don't prevent boot.
    # Always load `backend/.env` no matter where uvicorn is started from.
    _backend_env_file = (Path(__file__).resolve().parents[2] / ".env").as_posix()
    model_config = SettingsConfigDict(
        env_prefix="DOCBRIDGE_",
        env_file=_backend_env_file,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "DocBridge Backend"
    database_url: str = "sqlite:///./docbridge.db"
    # Comma-separated, e.g. "https://localhost:3000,https://addin.example.com".
    cors_origins: str = "*"
    log_level: str = "INFO"
    # When set, every bridge route requires `Authorization: Bearer <token>`.
    service_api_token: str | None = None

    # Orchestrator call waits this long for a client to report back.
    result_timeout_seconds: float = Field(default=300.0, gt=0)
    # In-flight tasks and cached results older than this are swept regardless of status.
    task_ttl_seconds: float = Field(default=300.0, gt=0)
    # Backup polling of the result cache in case a wakeup is missed.
    result_poll_interval_seconds: float = Field(default=0.1, gt=0)

    heartbeat_interval_seconds: float = Field(default=30.0, gt=0)
    push_max_reconnect_attempts: int = Field(default=3, ge=1)
    pull_interval_seconds: float = Field(default=0.15, gt=0)

    max_repair_attempts: int = Field(default=3, ge=1)

    gate_warn_lines: int = 30
    gate_warn_mutations: int = 5
    gate_block_lines: int = 80
    gate_block_mutations: int = 15

    def cors_origin_list(self) -> list[str]:
        return [item.strip() for item in self.cors_origins.split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
