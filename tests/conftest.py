"""Shared pytest fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from indextts_launcher.runner import CollectingSink, CommandRunner, CommandSpec, StepRunner

PythonSpec = Callable[..., CommandSpec]


@pytest.fixture(autouse=True)
def launcher_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "launcher-home"
    monkeypatch.setenv("INDEXTTS_LAUNCHER_HOME", str(home))
    for name in (
        "INDEXTTS_LAUNCHER_REPO_DIR",
        "INDEXTTS_LAUNCHER_NETWORK",
        "INDEXTTS_LAUNCHER_PORT",
        "INDEXTTS_LAUNCHER_LOG_LEVEL",
        "HF_ENDPOINT",
    ):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture()
def python_spec() -> PythonSpec:
    def _build(code: str, **kwargs) -> CommandSpec:
        return CommandSpec.of(sys.executable, "-c", code, **kwargs)

    return _build


@pytest.fixture()
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture()
def command_runner() -> CommandRunner:
    return CommandRunner()


@pytest.fixture()
def step_runner(command_runner: CommandRunner, sink: CollectingSink) -> StepRunner:
    return StepRunner(command_runner, sink)
