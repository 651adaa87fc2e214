"""FastAPI entry point wiring the bridge routes and the MCP tool surface."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from docbridge import __version__
from docbridge.core.config import get_settings
from docbridge.core.db import create_all
from docbridge.routers import bridge, health


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_all()
    yield


def create_app(mount_mcp: bool = True) -> FastAPI:
    settings = get_settings()
    logging.getLogger("docbridge").setLevel(settings.log_level.upper())

    app = FastAPI(title=settings.app_name, version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list() or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(health.router, prefix="/api/bridge/v1")
    app.include_router(bridge.router, tags=["bridge"])

    if mount_mcp:
        from docbridge.mcp_tools import mcp

        app.mount("/mcp", mcp.sse_app("/mcp"))
    return app


app = create_app()
