"""Spawn external tools with a fixed argument list, environment, and cwd."""

from __future__ import annotations

import enum
import logging
import os
import shlex
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from indextts_launcher.errors import SpawnError

__all__ = [
    "CommandResult",
    "CommandRunner",
    "CommandSpec",
    "Platform",
]

logger = logging.getLogger(__name__)

# Zero on non-Windows builds of CPython.
_CREATE_NO_WINDOW = getattr(subprocess, "CREATE_NO_WINDOW", 0)


class Platform(enum.Enum):
    """Closed set of platform targets the launcher knows how to drive."""

    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    OTHER = "other"

    @classmethod
    def current(cls) -> Platform:
        if sys.platform.startswith("win"):
            return cls.WINDOWS
        if sys.platform == "darwin":
            return cls.MACOS
        if sys.platform.startswith("linux"):
            return cls.LINUX
        return cls.OTHER

    @property
    def is_unix(self) -> bool:
        return self in (Platform.MACOS, Platform.LINUX)


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """Immutable description of one external process invocation."""

    program: str
    args: tuple[str, ...] = ()
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    hide_console: bool = True

    @classmethod
    def of(
        cls,
        program: str,
        *args: str,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandSpec:
        return cls(
            program=program,
            args=tuple(str(arg) for arg in args),
            cwd=Path(cwd) if cwd is not None else None,
            env=dict(env) if env else None,
        )

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    def display(self) -> str:
        return shlex.join(self.argv)


@dataclass(slots=True)
class CommandResult:
    """Captured output of a command that ran to completion."""

    spec: CommandSpec
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(slots=True)
class CommandRunner:
    """Launch processes described by :class:`CommandSpec` values.

    ``run`` waits for completion and captures output; ``spawn`` returns the
    live process with binary stdout/stderr pipes for incremental draining.
    """

    base_env: Mapping[str, str] | None = None
    platform: Platform = field(default_factory=Platform.current)

    def run(self, spec: CommandSpec, *, timeout: float | None = None) -> CommandResult:
        logger.debug("command.run %s", spec.display())
        try:
            completed = subprocess.run(  # noqa: S603
                spec.argv,
                cwd=self._cwd(spec),
                env=self._build_env(spec.env),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=timeout,
                creationflags=self._creationflags(spec),
            )
        except OSError as exc:
            raise SpawnError(spec.program, exc.strerror or str(exc)) from exc
        return CommandResult(
            spec=spec,
            exit_code=completed.returncode,
            stdout=completed.stdout.decode("utf-8", errors="replace"),
            stderr=completed.stderr.decode("utf-8", errors="replace"),
        )

    def spawn(self, spec: CommandSpec) -> subprocess.Popen[bytes]:
        logger.debug("command.spawn %s", spec.display())
        try:
            process = subprocess.Popen(  # noqa: S603
                spec.argv,
                cwd=self._cwd(spec),
                env=self._build_env(spec.env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                creationflags=self._creationflags(spec),
            )
        except OSError as exc:
            raise SpawnError(spec.program, exc.strerror or str(exc)) from exc
        logger.info("Spawned %s (pid %d)", spec.program, process.pid)
        return process

    # ------------------------------------------------------------------ helpers
    @staticmethod
    def _cwd(spec: CommandSpec) -> str | None:
        return str(spec.cwd) if spec.cwd is not None else None

    def _build_env(self, overrides: Mapping[str, str] | None) -> dict[str, str]:
        env: dict[str, str] = dict(self.base_env if self.base_env is not None else os.environ)
        if overrides:
            env.update({k: str(v) for k, v in overrides.items()})
        env.setdefault("PYTHONUNBUFFERED", "1")
        env.setdefault("PYTHONIOENCODING", "utf-8")
        return env

    def _creationflags(self, spec: CommandSpec) -> int:
        if self.platform is Platform.WINDOWS and spec.hide_console:  # pragma: no cover - Windows
            return _CREATE_NO_WINDOW
        return 0
