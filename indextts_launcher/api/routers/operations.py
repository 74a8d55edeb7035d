# ruff: noqa: B008
"""Provisioning operations that stream their output to the operations channel."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from indextts_launcher.api.context import AppContext, get_app_context
from indextts_launcher.api.schemas import (
    DeployRequest,
    ModelDownloadRequest,
    OperationRequest,
    OperationResponse,
    RepositoryCheckResponse,
    ToolInstallRequest,
)
from indextts_launcher.provisioning import DOWNLOAD_TOOLS, NetworkEnvironment

router = APIRouter(prefix="/operations", tags=["operations"])


def _network(context: AppContext, requested: NetworkEnvironment | None) -> NetworkEnvironment:
    return requested or NetworkEnvironment(context.config.network_environment)


@router.get("/repository", response_model=RepositoryCheckResponse)
def check_repository(context: AppContext = Depends(get_app_context)) -> RepositoryCheckResponse:
    repository = context.repository()
    repo_dir = context.config.repo_dir
    exists = repository.check(repo_dir)
    return RepositoryCheckResponse(
        repo_dir=str(repo_dir),
        exists=exists,
        missing_files=repository.missing_files(repo_dir) if exists else [],
    )


@router.post("/clone", response_model=OperationResponse)
def clone_repository(context: AppContext = Depends(get_app_context)) -> OperationResponse:
    outcome = context.repository().ensure_checkout(context.config.repo_dir)
    return OperationResponse(operation="clone", detail=outcome.value)


@router.post("/lfs", response_model=OperationResponse)
def init_lfs(context: AppContext = Depends(get_app_context)) -> OperationResponse:
    context.repository().init_lfs(context.config.repo_dir)
    return OperationResponse(operation="lfs")


@router.post("/sync", response_model=OperationResponse)
def sync_environment(
    payload: OperationRequest | None = None,
    context: AppContext = Depends(get_app_context),
) -> OperationResponse:
    payload = payload or OperationRequest()
    ran = context.environment().sync(
        context.config.repo_dir,
        _network(context, payload.network_environment),
        force=payload.force,
    )
    return OperationResponse(operation="sync", detail="synced" if ran else "up-to-date")


@router.post("/tools", response_model=OperationResponse)
def install_download_tools(
    payload: ToolInstallRequest | None = None,
    context: AppContext = Depends(get_app_context),
) -> OperationResponse:
    tools = (payload.tools if payload else None) or list(DOWNLOAD_TOOLS)
    context.environment().install_tools(context.config.repo_dir, tools)
    return OperationResponse(
        operation="tools", detail=f"{', '.join(tools)} installed successfully using uv tool."
    )


@router.post("/model", response_model=OperationResponse)
def download_model(
    payload: ModelDownloadRequest | None = None,
    context: AppContext = Depends(get_app_context),
) -> OperationResponse:
    payload = payload or ModelDownloadRequest()
    context.environment().download_model(
        context.config.repo_dir,
        _network(context, payload.network_environment),
        source=payload.source,
        save_path=payload.save_path or context.config.model_dir,
    )
    return OperationResponse(operation="model")


@router.post("/deploy", response_model=OperationResponse)
def deploy(
    payload: DeployRequest | None = None,
    context: AppContext = Depends(get_app_context),
) -> OperationResponse:
    payload = payload or DeployRequest()
    report = context.deployer().deploy(
        context.config.repo_dir,
        _network(context, payload.network_environment),
        model_dir=payload.save_path or context.config.model_dir,
        source=payload.source,
        force_sync=payload.force_sync,
    )
    return OperationResponse(
        operation="deploy", detail=report.checkout.value, completed=report.completed
    )


__all__ = ["router"]
