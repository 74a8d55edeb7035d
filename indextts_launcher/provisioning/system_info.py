"""Static host information shown before installation starts."""

from __future__ import annotations

import logging
import platform
import subprocess
from dataclasses import asdict, dataclass

import psutil

from indextts_launcher.errors import SpawnError
from indextts_launcher.runner import CommandRunner, CommandSpec

from .environment import FP16_VRAM_THRESHOLD_GB, GpuInfo

__all__ = ["SystemInfo", "collect_system_info", "query_nvidia_gpu"]

logger = logging.getLogger(__name__)

_GIB = 1024.0**3


@dataclass(slots=True)
class SystemInfo:
    os: str
    cpu_brand: str
    cpu_cores: int | None
    total_memory_gb: float
    available_memory_gb: float
    total_disk_gb: float
    available_disk_gb: float
    gpu_info: GpuInfo | None = None

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


def query_nvidia_gpu(runner: CommandRunner) -> GpuInfo | None:
    """Ask ``nvidia-smi`` for the first GPU; ``None`` when unavailable."""

    spec = CommandSpec.of(
        "nvidia-smi", "--query-gpu=name,memory.total,driver_version", "--format=csv,noheader"
    )
    try:
        result = runner.run(spec, timeout=15)
    except (SpawnError, subprocess.TimeoutExpired):
        return None
    if not result.ok:
        return None
    first = next((line for line in result.stdout.splitlines() if line.strip()), None)
    if first is None:
        return None
    parts = [part.strip() for part in first.split(",")]
    if len(parts) < 2:
        return None
    try:
        vram_gb: float | None = float(parts[1].replace("MiB", "").strip()) / 1024.0
    except ValueError:
        vram_gb = None
    return GpuInfo(
        has_cuda=True,
        name=parts[0] or None,
        vram_gb=vram_gb,
        recommended_fp16=vram_gb is not None and vram_gb > FP16_VRAM_THRESHOLD_GB,
    )


def _disk_totals() -> tuple[float, float]:
    total = available = 0
    seen: set[str] = set()
    for partition in psutil.disk_partitions(all=False):
        if partition.device in seen:
            continue
        seen.add(partition.device)
        try:
            usage = psutil.disk_usage(partition.mountpoint)
        except (PermissionError, OSError):
            logger.debug("Skipping unreadable mount %s", partition.mountpoint)
            continue
        total += usage.total
        available += usage.free
    return total / _GIB, available / _GIB


def collect_system_info(runner: CommandRunner) -> SystemInfo:
    memory = psutil.virtual_memory()
    total_disk, available_disk = _disk_totals()
    return SystemInfo(
        os=f"{platform.system()} {platform.release()}".strip() or "Unknown OS",
        cpu_brand=platform.processor() or platform.machine() or "Unknown CPU",
        cpu_cores=psutil.cpu_count(logical=True),
        total_memory_gb=memory.total / _GIB,
        available_memory_gb=memory.available / _GIB,
        total_disk_gb=total_disk,
        available_disk_gb=available_disk,
        gpu_info=query_nvidia_gpu(runner),
    )
