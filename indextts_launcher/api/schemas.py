"""Pydantic schemas shared across API routers."""

from __future__ import annotations

from pydantic import BaseModel, Field

from indextts_launcher.provisioning import GpuInfo, ModelSource, NetworkEnvironment, SystemInfo
from indextts_launcher.runner import ServerStatus


class APIMessage(BaseModel):
    """Simple message envelope."""

    message: str


class ErrorResponse(BaseModel):
    detail: str
    error: str


class ServerStatusResponse(BaseModel):
    status: ServerStatus
    pid: int | None = None
    port: int


class ServerStartRequest(BaseModel):
    hf_endpoint: str | None = None
    use_fp16: bool | None = None
    use_deepspeed: bool | None = None


class OperationRequest(BaseModel):
    network_environment: NetworkEnvironment | None = None
    force: bool = False


class ToolInstallRequest(BaseModel):
    tools: list[str] = Field(default_factory=list, description="Defaults to the download tools")


class ModelDownloadRequest(BaseModel):
    network_environment: NetworkEnvironment | None = None
    source: ModelSource | None = None
    save_path: str | None = None


class DeployRequest(ModelDownloadRequest):
    force_sync: bool = False


class OperationResponse(BaseModel):
    operation: str
    status: str = "SUCCESS"
    detail: str | None = None
    completed: list[str] = Field(default_factory=list)


class RepositoryCheckResponse(BaseModel):
    repo_dir: str
    exists: bool
    missing_files: list[str] = Field(default_factory=list)


class GpuInfoResponse(BaseModel):
    has_cuda: bool
    name: str | None = None
    vram_gb: float | None = None
    recommended_fp16: bool

    @classmethod
    def from_info(cls, info: GpuInfo) -> GpuInfoResponse:
        return cls(
            has_cuda=info.has_cuda,
            name=info.name,
            vram_gb=info.vram_gb,
            recommended_fp16=info.recommended_fp16,
        )


class SystemInfoResponse(BaseModel):
    os: str
    cpu_brand: str
    cpu_cores: int | None
    total_memory_gb: float
    available_memory_gb: float
    total_disk_gb: float
    available_disk_gb: float
    gpu_info: GpuInfoResponse | None = None

    @classmethod
    def from_info(cls, info: SystemInfo) -> SystemInfoResponse:
        return cls(
            os=info.os,
            cpu_brand=info.cpu_brand,
            cpu_cores=info.cpu_cores,
            total_memory_gb=round(info.total_memory_gb, 2),
            available_memory_gb=round(info.available_memory_gb, 2),
            total_disk_gb=round(info.total_disk_gb, 2),
            available_disk_gb=round(info.available_disk_gb, 2),
            gpu_info=GpuInfoResponse.from_info(info.gpu_info) if info.gpu_info else None,
        )


class ToolStatusResponse(BaseModel):
    git_installed: bool
    git_lfs_installed: bool
    python_installed: bool
    uv_installed: bool
    cuda_toolkit_installed: bool


__all__ = [
    "APIMessage",
    "DeployRequest",
    "ErrorResponse",
    "GpuInfoResponse",
    "ModelDownloadRequest",
    "OperationRequest",
    "OperationResponse",
    "RepositoryCheckResponse",
    "ServerStartRequest",
    "ServerStatusResponse",
    "SystemInfoResponse",
    "ToolInstallRequest",
    "ToolStatusResponse",
]
