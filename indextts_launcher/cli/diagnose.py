"""Diagnostic helpers for inspecting the host before a deployment."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer

from indextts_launcher.config import load_config
from indextts_launcher.errors import LauncherError
from indextts_launcher.provisioning import (
    EnvironmentManager,
    GpuInfo,
    Toolchain,
    collect_system_info,
    missing_tools,
)
from indextts_launcher.provisioning.system_info import query_nvidia_gpu
from indextts_launcher.runner import CommandRunner, NullSink, StepRunner

diagnose_app = typer.Typer(help="Inspect the host, its tools, and its GPU.")

JsonOption = Annotated[bool, typer.Option("--json", help="Print machine-readable JSON")]
RepoDirOption = Annotated[
    Path | None,
    typer.Option(
        "--repo-dir",
        envvar="INDEXTTS_LAUNCHER_REPO_DIR",
        help="Use the checkout's own GPU probe when available",
        show_default=False,
    ),
]


def _steps() -> StepRunner:
    return StepRunner(CommandRunner(), NullSink())


def _describe_gpu(info: GpuInfo | None) -> str:
    if info is None or not info.has_cuda:
        return "no CUDA device detected"
    vram = f"{info.vram_gb:.1f} GB" if info.vram_gb is not None else "unknown VRAM"
    fp16 = "fp16 recommended" if info.recommended_fp16 else "fp32 recommended"
    return f"{info.name or 'unknown GPU'} ({vram}, {fp16})"


@diagnose_app.command("system")
def system(as_json: JsonOption = False) -> None:
    """Print OS, CPU, memory, disk, and GPU details."""

    info = collect_system_info(CommandRunner())
    if as_json:
        typer.echo(json.dumps(info.as_dict(), indent=2))
        return
    typer.echo(f"OS:      {info.os}")
    typer.echo(f"CPU:     {info.cpu_brand} ({info.cpu_cores or '?'} threads)")
    typer.echo(
        f"Memory:  {info.available_memory_gb:.1f} / {info.total_memory_gb:.1f} GB available"
    )
    typer.echo(f"Disk:    {info.available_disk_gb:.1f} / {info.total_disk_gb:.1f} GB available")
    typer.echo(f"GPU:     {_describe_gpu(info.gpu_info)}")


@diagnose_app.command("tools")
def tools(as_json: JsonOption = False) -> None:
    """Report which prerequisites are installed; exit 1 when git or uv is missing."""

    status = Toolchain(_steps()).check()
    if as_json:
        typer.echo(json.dumps(status.as_dict(), indent=2))
    else:
        for name, present in status.as_dict().items():
            typer.echo(f"{name:<24} {'yes' if present else 'no'}")
    missing = missing_tools(status)
    if missing:
        typer.echo(f"Missing required tools: {', '.join(missing)}", err=True)
        raise typer.Exit(code=1)


@diagnose_app.command("gpu")
def gpu(repo_dir: RepoDirOption = None) -> None:
    """Detect CUDA and recommend a precision mode."""

    target = repo_dir or load_config().repo_dir
    info: GpuInfo | None
    if (target / "tools" / "gpu_check.py").is_file():
        try:
            info = EnvironmentManager(_steps()).gpu_check(target)
        except LauncherError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc
    else:
        info = query_nvidia_gpu(CommandRunner())
    typer.echo(_describe_gpu(info))


if __name__ == "__main__":  # pragma: no cover - module executed as a script
    diagnose_app()
