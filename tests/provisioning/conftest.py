"""Shared fixtures for provisioning tests."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from indextts_launcher.errors import StepFailed
from indextts_launcher.provisioning import RepositoryManager
from indextts_launcher.runner import (
    CollectingSink,
    CommandRunner,
    CommandSpec,
    StepResult,
    StepRunner,
)

_GIT = shutil.which("git") or "git"


def _run_git(*args: str, cwd: Path, capture: bool = False) -> subprocess.CompletedProcess:
    return subprocess.run(  # noqa: S603
        [_GIT, *args],
        cwd=cwd,
        check=True,
        capture_output=capture,
        text=capture,
    )


def init_git_repo(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    _run_git("init", "--initial-branch", "main", cwd=path)
    _run_git("config", "user.name", "Launcher Tests", cwd=path)
    _run_git("config", "user.email", "launcher@example.com", cwd=path)


def commit_file(path: Path, filename: str, content: str) -> str:
    file_path = path / filename
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(content)
    _run_git("add", filename, cwd=path)
    _run_git("commit", "-m", f"update {filename}", cwd=path)
    result = _run_git("rev-parse", "HEAD", cwd=path, capture=True)
    return result.stdout.strip()


@pytest.fixture()
def origin_repo(tmp_path: Path) -> Path:
    """A local repository shaped like the server checkout."""

    origin = tmp_path / "origin"
    init_git_repo(origin)
    commit_file(origin, "webui.py", "print('webui')\n")
    commit_file(origin, "pyproject.toml", "[project]\nname = 'index-tts'\n")
    return origin


@pytest.fixture()
def repository(step_runner, origin_repo: Path) -> RepositoryManager:
    return RepositoryManager(step_runner, remote_url=str(origin_repo))


class FakeSteps(StepRunner):
    """Record steps instead of spawning them; fail the ones named in ``fail``."""

    def __init__(self, runner: CommandRunner | None = None, fail: set[str] | None = None) -> None:
        super().__init__(runner or CommandRunner(), CollectingSink())
        self.fail = fail or set()
        self.calls: list[tuple[str, CommandSpec]] = []

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def spec_for(self, step: str) -> CommandSpec:
        return next(spec for name, spec in self.calls if name == step)

    def run_step(self, step: str, spec: CommandSpec, *, check: bool = True) -> StepResult:
        self.calls.append((step, spec))
        if step in self.fail:
            if check:
                raise StepFailed(step, f"{step} exploded", 1)
            return StepResult(step=step, exit_code=1, duration=0.0, stderr=f"{step} exploded")
        return StepResult(step=step, exit_code=0, duration=0.0)


@pytest.fixture()
def fake_steps() -> FakeSteps:
    return FakeSteps()
