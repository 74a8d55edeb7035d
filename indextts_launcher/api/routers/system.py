# ruff: noqa: B008
"""Host information and toolchain endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from indextts_launcher.api.context import AppContext, get_app_context
from indextts_launcher.api.schemas import (
    GpuInfoResponse,
    OperationResponse,
    SystemInfoResponse,
    ToolStatusResponse,
)
from indextts_launcher.provisioning import INSTALLABLE_TOOLS, collect_system_info

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/info", response_model=SystemInfoResponse)
def system_info(context: AppContext = Depends(get_app_context)) -> SystemInfoResponse:
    return SystemInfoResponse.from_info(collect_system_info(context.runner))


@router.get("/tools", response_model=ToolStatusResponse)
def tool_status(context: AppContext = Depends(get_app_context)) -> ToolStatusResponse:
    return ToolStatusResponse(**context.toolchain().check().as_dict())


@router.post("/tools/{tool}/install", response_model=OperationResponse)
def install_tool(tool: str, context: AppContext = Depends(get_app_context)) -> OperationResponse:
    if tool not in INSTALLABLE_TOOLS:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Unknown tool '{tool}'")
    context.toolchain().install(tool)
    return OperationResponse(operation=f"install-{tool}")


@router.get("/gpu", response_model=GpuInfoResponse)
def gpu_check(context: AppContext = Depends(get_app_context)) -> GpuInfoResponse:
    info = context.environment().gpu_check(context.config.repo_dir)
    return GpuInfoResponse.from_info(info)


__all__ = ["router"]
