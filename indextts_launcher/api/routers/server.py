# ruff: noqa: B008
"""Server lifecycle endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from indextts_launcher.api.context import AppContext, get_app_context
from indextts_launcher.api.schemas import ServerStartRequest, ServerStatusResponse
from indextts_launcher.provisioning import server_spec
from indextts_launcher.runner import ServerStatus

router = APIRouter(prefix="/server", tags=["server"])


def _response(context: AppContext, status: ServerStatus) -> ServerStatusResponse:
    return ServerStatusResponse(status=status, pid=context.server.pid, port=context.server.port)


@router.get("/status", response_model=ServerStatusResponse)
def get_status(context: AppContext = Depends(get_app_context)) -> ServerStatusResponse:
    return _response(context, context.server.status())


@router.post("/start", response_model=ServerStatusResponse)
def start_server(
    payload: ServerStartRequest | None = None,
    context: AppContext = Depends(get_app_context),
) -> ServerStatusResponse:
    payload = payload or ServerStartRequest()
    config = context.config
    spec = server_spec(
        config.repo_dir,
        port=context.server.port,
        hf_endpoint=payload.hf_endpoint or config.hf_endpoint,
        use_fp16=config.use_fp16 if payload.use_fp16 is None else payload.use_fp16,
        use_deepspeed=(
            config.use_deepspeed if payload.use_deepspeed is None else payload.use_deepspeed
        ),
        model_dir=config.model_dir,
    )
    return _response(context, context.server.start(spec))


@router.post("/stop", response_model=ServerStatusResponse)
def stop_server(context: AppContext = Depends(get_app_context)) -> ServerStatusResponse:
    return _response(context, context.server.stop())


__all__ = ["router"]
