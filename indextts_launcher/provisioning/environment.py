"""uv-managed Python environment, model download, and server launch specs."""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from indextts_launcher.errors import StepFailed
from indextts_launcher.runner import CommandSpec, StepRunner
from indextts_launcher.runner.steps import EMPTY_STDERR_PLACEHOLDER

from .dependency_sync import SyncStateStore, compute_sync_fingerprint

__all__ = [
    "DOWNLOAD_TOOLS",
    "EnvironmentManager",
    "GpuInfo",
    "ModelSource",
    "NetworkEnvironment",
    "model_download_spec",
    "server_spec",
    "sync_spec",
    "tool_install_spec",
]

logger = logging.getLogger(__name__)

PYPI_MIRROR = "https://pypi.tuna.tsinghua.edu.cn/simple"
HF_MIRROR = "https://hf-mirror.com"
MODEL_ID = "IndexTeam/IndexTTS-2"
DOWNLOAD_TOOLS: tuple[str, ...] = ("huggingface-hub[cli,hf_xet]", "modelscope")
FP16_VRAM_THRESHOLD_GB = 8.0


class NetworkEnvironment(str, enum.Enum):
    GLOBAL = "global"
    MAINLAND_CHINA = "mainland_china"

    @property
    def index_url(self) -> str | None:
        return PYPI_MIRROR if self is NetworkEnvironment.MAINLAND_CHINA else None


class ModelSource(str, enum.Enum):
    HUGGING_FACE = "huggingface"
    MODELSCOPE = "modelscope"

    @classmethod
    def for_network(cls, network: NetworkEnvironment) -> ModelSource:
        if network is NetworkEnvironment.MAINLAND_CHINA:
            return cls.MODELSCOPE
        return cls.HUGGING_FACE


@dataclass(slots=True)
class GpuInfo:
    """Result of the repository's GPU probe script."""

    has_cuda: bool
    name: str | None = None
    vram_gb: float | None = None
    recommended_fp16: bool = False

    @classmethod
    def parse(cls, output: str) -> GpuInfo:
        """Read the probe output using plain substring checks."""

        has_cuda = "torch.cuda.is_available(): True" in output
        name: str | None = None
        vram_gb: float | None = None
        for line in output.splitlines():
            if name is None and "GPU:" in line:
                name = line.split(":", 1)[1].strip() or None
            elif vram_gb is None and "VRAM:" in line:
                words = line.split(":", 1)[1].split()
                if words:
                    try:
                        vram_gb = float(words[0])
                    except ValueError:
                        vram_gb = None
        recommended = vram_gb is not None and vram_gb > FP16_VRAM_THRESHOLD_GB
        return cls(has_cuda=has_cuda, name=name, vram_gb=vram_gb, recommended_fp16=recommended)


# ---------------------------------------------------------------------- command specs
def sync_spec(repo_dir: Path, network: NetworkEnvironment) -> CommandSpec:
    args = ["sync", "--all-extras"]
    if network.index_url:
        args.extend(["--index-url", network.index_url])
    return CommandSpec.of("uv", *args, cwd=repo_dir)


def tool_install_spec(repo_dir: Path, tool: str) -> CommandSpec:
    return CommandSpec.of("uv", "tool", "install", tool, cwd=repo_dir)


def model_download_spec(
    repo_dir: Path,
    network: NetworkEnvironment,
    *,
    source: ModelSource | None = None,
    save_path: str | None = None,
) -> CommandSpec:
    source = source or ModelSource.for_network(network)
    target = save_path or "checkpoints"
    if source is ModelSource.HUGGING_FACE:
        env = {"HF_ENDPOINT": HF_MIRROR} if network is NetworkEnvironment.MAINLAND_CHINA else None
        return CommandSpec.of(
            "uv", "run", "hf", "download", MODEL_ID, "--local-dir", target, cwd=repo_dir, env=env
        )
    return CommandSpec.of(
        "uv", "run", "modelscope", "download", "--model", MODEL_ID, "--local_dir", target,
        cwd=repo_dir,
    )


def server_spec(
    repo_dir: Path,
    *,
    port: int,
    hf_endpoint: str | None = None,
    use_fp16: bool = False,
    use_deepspeed: bool = False,
    model_dir: str | None = None,
) -> CommandSpec:
    args = ["run", "webui.py", "--port", str(port)]
    if model_dir:
        args.extend(["--model_dir", model_dir])
    if use_fp16:
        args.append("--fp16")
    if use_deepspeed:
        args.append("--deepspeed")
    env = {"HF_ENDPOINT": hf_endpoint} if hf_endpoint else None
    return CommandSpec.of("uv", *args, cwd=repo_dir, env=env)


# ---------------------------------------------------------------------- manager
class EnvironmentManager:
    """Provision the server's uv environment and model weights."""

    def __init__(self, steps: StepRunner, *, state_store: SyncStateStore | None = None) -> None:
        self.steps = steps
        self.state_store = state_store

    def sync(
        self, repo_dir: Path, network: NetworkEnvironment, *, force: bool = False
    ) -> bool:
        """Run ``uv sync`` unless nothing changed since the last success.

        Returns ``True`` when the sync actually ran.
        """

        repo_dir = Path(repo_dir)
        fingerprint = compute_sync_fingerprint(repo_dir, network.index_url)
        venv_ready = (repo_dir / ".venv").is_dir()
        if (
            not force
            and venv_ready
            and self.state_store is not None
            and self.state_store.is_current(repo_dir, fingerprint)
        ):
            logger.info("Environment for %s is up to date; skipping uv sync", repo_dir)
            return False
        self.steps.run_step("sync", sync_spec(repo_dir, network))
        if self.state_store is not None:
            self.state_store.record(repo_dir, fingerprint, network.value)
        return True

    def install_tools(self, repo_dir: Path, tools: Sequence[str] = DOWNLOAD_TOOLS) -> None:
        self.steps.run_steps(
            (f"install-{_tool_label(tool)}", tool_install_spec(Path(repo_dir), tool))
            for tool in tools
        )

    def download_model(
        self,
        repo_dir: Path,
        network: NetworkEnvironment,
        *,
        source: ModelSource | None = None,
        save_path: str | None = None,
    ) -> None:
        spec = model_download_spec(Path(repo_dir), network, source=source, save_path=save_path)
        self.steps.run_step("model-download", spec)

    def gpu_check(self, repo_dir: Path) -> GpuInfo:
        result = self.steps.runner.run(
            CommandSpec.of("uv", "run", "tools/gpu_check.py", cwd=Path(repo_dir))
        )
        if not result.ok:
            output = f"{result.stdout}\n{result.stderr}".strip()
            raise StepFailed("gpu-check", output or EMPTY_STDERR_PLACEHOLDER, result.exit_code)
        return GpuInfo.parse(result.stdout)


def _tool_label(tool: str) -> str:
    return tool.split("[", 1)[0]
