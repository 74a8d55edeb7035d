"""FastAPI application entry point."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from indextts_launcher.api.context import AppContext
from indextts_launcher.api.middleware import AuditLoggerMiddleware
from indextts_launcher.api.routers import logs, operations, server, system
from indextts_launcher.api.schemas import APIMessage
from indextts_launcher.config import load_config
from indextts_launcher.errors import (
    AlreadyRunning,
    KillFailed,
    LauncherError,
    PortStillBound,
    RepositoryError,
    SpawnError,
    StepFailed,
    SupervisorBusy,
    UnsupportedPlatform,
)
from indextts_launcher.runner import ServerStatus
from indextts_launcher.version import __version__

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[LauncherError], int], ...] = (
    (AlreadyRunning, status.HTTP_409_CONFLICT),
    (SupervisorBusy, status.HTTP_409_CONFLICT),
    (RepositoryError, status.HTTP_409_CONFLICT),
    (UnsupportedPlatform, status.HTTP_501_NOT_IMPLEMENTED),
    (StepFailed, status.HTTP_502_BAD_GATEWAY),
    (SpawnError, status.HTTP_502_BAD_GATEWAY),
    (KillFailed, status.HTTP_502_BAD_GATEWAY),
    (PortStillBound, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: LauncherError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _launcher_error_handler(request: Request, exc: LauncherError) -> JSONResponse:
    code = status_for(exc)
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=code, content={"detail": str(exc), "error": type(exc).__name__}
    )


def create_app(context: AppContext | None = None) -> FastAPI:
    """Instantiate the FastAPI application with all routers."""

    if context is None:
        context = AppContext.from_config(load_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        supervisor = app.state.context.server
        if supervisor.status() is ServerStatus.RUNNING:
            logger.info("Stopping the supervised server on shutdown")
            try:
                await run_in_threadpool(supervisor.stop)
            except LauncherError:
                logger.exception("Failed to stop the supervised server on shutdown")

    app = FastAPI(
        title="IndexTTS2 Launcher API",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.context = context
    app.add_middleware(AuditLoggerMiddleware)
    app.add_exception_handler(LauncherError, _launcher_error_handler)

    app.include_router(server.router)
    app.include_router(operations.router)
    app.include_router(system.router)
    app.include_router(logs.router)

    @app.get("/healthz", response_model=APIMessage, tags=["system"])
    def healthz() -> APIMessage:
        return APIMessage(message="ok")

    return app


__all__ = ["create_app", "status_for"]
