"""Repository, environment, and toolchain provisioning driven through the step runner."""

from .dependency_sync import SyncRecord, SyncStateStore, compute_sync_fingerprint
from .deploy import Deployer, DeployReport
from .environment import (
    DOWNLOAD_TOOLS,
    EnvironmentManager,
    GpuInfo,
    ModelSource,
    NetworkEnvironment,
    server_spec,
)
from .repository import (
    INDEX_TTS_REMOTE,
    CheckoutOutcome,
    ExistingDirectoryPolicy,
    RepositoryManager,
)
from .system_info import SystemInfo, collect_system_info
from .toolchain import INSTALLABLE_TOOLS, Toolchain, ToolStatus, missing_tools

__all__ = [
    "DOWNLOAD_TOOLS",
    "INDEX_TTS_REMOTE",
    "INSTALLABLE_TOOLS",
    "CheckoutOutcome",
    "DeployReport",
    "Deployer",
    "EnvironmentManager",
    "ExistingDirectoryPolicy",
    "GpuInfo",
    "ModelSource",
    "NetworkEnvironment",
    "RepositoryManager",
    "SyncRecord",
    "SyncStateStore",
    "SystemInfo",
    "ToolStatus",
    "Toolchain",
    "collect_system_info",
    "compute_sync_fingerprint",
    "missing_tools",
    "server_spec",
]
