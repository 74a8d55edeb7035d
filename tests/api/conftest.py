from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from indextts_launcher.api.context import AppContext
from indextts_launcher.api.main import create_app
from indextts_launcher.api.streams import SERVER_CHANNEL, LogManager
from indextts_launcher.config import LauncherConfig
from indextts_launcher.provisioning import SyncStateStore
from indextts_launcher.runner import CommandRunner, ServerSupervisor, StepRunner
from tests.provisioning.conftest import FakeSteps


class RecordingReclaimer:
    def __init__(self) -> None:
        self.ports: list[int] = []

    def ensure_closed(self, port: int) -> None:
        self.ports.append(port)


class FakeStepsContext(AppContext):
    """Route provisioning steps through one shared :class:`FakeSteps`."""

    fake_steps: FakeSteps | None = None

    def steps(self) -> StepRunner:
        assert self.fake_steps is not None
        return self.fake_steps


@pytest.fixture()
def reclaimer() -> RecordingReclaimer:
    return RecordingReclaimer()


@pytest.fixture()
def fake_steps() -> FakeSteps:
    return FakeSteps()


@pytest.fixture()
def context(tmp_path: Path, reclaimer: RecordingReclaimer, fake_steps: FakeSteps) -> AppContext:
    config = LauncherConfig(repo_dir=tmp_path / "index-tts", port=17870)
    runner = CommandRunner()
    log_manager = LogManager()
    supervisor = ServerSupervisor(
        runner,
        log_manager.sink(SERVER_CHANNEL),
        reclaimer=reclaimer,
        port=config.port,
        stop_timeout=5.0,
    )
    context = FakeStepsContext(
        config=config,
        runner=runner,
        log_manager=log_manager,
        supervisor=supervisor,
        state_store=SyncStateStore(tmp_path / "state"),
    )
    context.fake_steps = fake_steps
    return context


@pytest.fixture()
def app(context: AppContext):
    return create_app(context)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client
