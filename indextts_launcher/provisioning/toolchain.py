"""Detect and install the external tools the launcher shells out to."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import asdict, dataclass

from indextts_launcher.errors import SpawnError, UnsupportedPlatform
from indextts_launcher.runner import CommandRunner, CommandSpec, Platform, StepRunner

__all__ = ["INSTALLABLE_TOOLS", "ToolStatus", "Toolchain", "missing_tools"]

logger = logging.getLogger(__name__)

UV_INSTALL_SCRIPT = "curl -LsSf https://astral.sh/uv/install.sh | sh"


@dataclass(slots=True)
class ToolStatus:
    git_installed: bool
    git_lfs_installed: bool
    python_installed: bool
    uv_installed: bool
    cuda_toolkit_installed: bool

    def as_dict(self) -> dict[str, bool]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class _Recipe:
    manager: str
    packages: tuple[tuple[str, ...], ...]
    fallback: tuple[str, ...] | None = None
    manual_url: str | None = None


_WINGET_PROBE = ("winget", "--version")
_BREW_PROBE = ("brew", "--version")

# Windows uses winget, macOS uses Homebrew; everything else is manual.
_RECIPES: dict[tuple[str, Platform], _Recipe] = {
    ("git", Platform.WINDOWS): _Recipe(
        manager="Winget",
        packages=(("winget", "install", "--id", "Git.Git", "-e", "--source", "winget"),),
        manual_url="https://git-scm.com/download/win",
    ),
    ("git", Platform.MACOS): _Recipe(
        manager="Homebrew",
        packages=(("brew", "install", "git", "git-lfs"),),
        manual_url="https://brew.sh",
    ),
    ("uv", Platform.WINDOWS): _Recipe(
        manager="Winget",
        packages=(("winget", "install", "--id", "astral-sh.uv", "-e"),),
        manual_url="https://docs.astral.sh/uv/install",
    ),
    ("uv", Platform.MACOS): _Recipe(
        manager="Homebrew",
        packages=(("brew", "install", "uv"),),
        fallback=("sh", "-c", UV_INSTALL_SCRIPT),
    ),
    ("python", Platform.WINDOWS): _Recipe(
        manager="Winget",
        packages=(("winget", "install", "--id", "Python.Python.3.10", "-e"),),
        manual_url="https://www.python.org/downloads/windows/",
    ),
    ("python", Platform.MACOS): _Recipe(
        manager="Homebrew",
        packages=(("brew", "install", "python@3.10"),),
        manual_url="https://www.python.org/downloads/mac-osx/",
    ),
}

INSTALLABLE_TOOLS: tuple[str, ...] = ("git", "uv", "python")


class Toolchain:
    """Check for and install git, Git LFS, uv, and Python."""

    def __init__(self, steps: StepRunner, *, platform: Platform | None = None) -> None:
        self.steps = steps
        self.platform = platform or steps.runner.platform

    @property
    def runner(self) -> CommandRunner:
        return self.steps.runner

    def check(self) -> ToolStatus:
        return ToolStatus(
            git_installed=self._available("git", "--version"),
            git_lfs_installed=self._available("git-lfs", "version"),
            python_installed=self._available("python", "--version")
            or self._available("python3", "--version"),
            uv_installed=self._available("uv", "--version"),
            cuda_toolkit_installed=self._available("nvcc", "--version"),
        )

    def install(self, tool: str) -> None:
        """Install ``tool`` with the platform's package manager."""

        if tool not in INSTALLABLE_TOOLS:
            expected = ", ".join(INSTALLABLE_TOOLS)
            raise ValueError(f"Unknown tool '{tool}'; expected one of {expected}")
        recipe = _RECIPES.get((tool, self.platform))
        if recipe is None:
            raise UnsupportedPlatform(
                f"Automatic {tool} installation",
                self.platform.value,
                hint="Please install it manually.",
            )
        probe = _WINGET_PROBE if recipe.manager == "Winget" else _BREW_PROBE
        if not self._available(*probe):
            if recipe.fallback is not None:
                logger.info("%s not found; using the %s install script", recipe.manager, tool)
                self.steps.run_step(f"install-{tool}", CommandSpec.of(*recipe.fallback))
                return
            raise UnsupportedPlatform(
                f"Automatic {tool} installation without {recipe.manager}",
                self.platform.value,
                hint=f"Please install {tool} manually from {recipe.manual_url}",
            )
        self.steps.run_steps(
            (f"install-{tool}", CommandSpec.of(*argv)) for argv in recipe.packages
        )

    def _available(self, program: str, *args: str) -> bool:
        try:
            return self.runner.run(CommandSpec.of(program, *args), timeout=30).ok
        except (SpawnError, subprocess.TimeoutExpired):
            return False


def missing_tools(status: ToolStatus, required: Sequence[str] = ("git", "uv")) -> list[str]:
    flags = {
        "git": status.git_installed,
        "git-lfs": status.git_lfs_installed,
        "python": status.python_installed,
        "uv": status.uv_installed,
        "nvcc": status.cuda_toolkit_installed,
    }
    return [name for name in required if not flags.get(name, False)]
