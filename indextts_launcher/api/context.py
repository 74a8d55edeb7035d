"""Application context helpers shared across routers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import cast

from fastapi import Request, WebSocket

from indextts_launcher.api.streams import OPERATIONS_CHANNEL, SERVER_CHANNEL, LogManager
from indextts_launcher.config import LauncherConfig, state_dir
from indextts_launcher.provisioning import (
    Deployer,
    EnvironmentManager,
    ExistingDirectoryPolicy,
    RepositoryManager,
    SyncStateStore,
    Toolchain,
)
from indextts_launcher.runner import (
    CommandRunner,
    PortReclaimer,
    ServerSupervisor,
    StepRunner,
)


@dataclass(slots=True)
class AppContext:
    """Container for shared application dependencies."""

    config: LauncherConfig
    runner: CommandRunner = field(default_factory=CommandRunner)
    log_manager: LogManager = field(default_factory=LogManager)
    supervisor: ServerSupervisor | None = None
    state_store: SyncStateStore | None = None

    def __post_init__(self) -> None:
        if self.supervisor is None:
            self.supervisor = ServerSupervisor(
                self.runner,
                self.log_manager.sink(SERVER_CHANNEL),
                reclaimer=PortReclaimer(self.runner),
                port=self.config.port,
            )

    @classmethod
    def from_config(cls, config: LauncherConfig) -> AppContext:
        return cls(config=config, state_store=SyncStateStore(state_dir() / "sync"))

    @property
    def server(self) -> ServerSupervisor:
        return cast(ServerSupervisor, self.supervisor)

    def steps(self) -> StepRunner:
        return StepRunner(self.runner, self.log_manager.sink(OPERATIONS_CHANNEL))

    def repository(self) -> RepositoryManager:
        return RepositoryManager(
            self.steps(), policy=ExistingDirectoryPolicy(self.config.existing_dir_policy)
        )

    def environment(self) -> EnvironmentManager:
        return EnvironmentManager(self.steps(), state_store=self.state_store)

    def toolchain(self) -> Toolchain:
        return Toolchain(self.steps())

    def deployer(self) -> Deployer:
        return Deployer(self.repository(), self.environment())


def get_app_context(request: Request) -> AppContext:
    """Return the configured :class:`AppContext`."""

    context = getattr(request.app.state, "context", None)
    if context is None:  # pragma: no cover - create_app always sets it
        raise RuntimeError("Application context missing")
    return cast(AppContext, context)


def get_websocket_context(websocket: WebSocket) -> AppContext:
    """Return the configured :class:`AppContext` from a WebSocket."""

    context = getattr(websocket.app.state, "context", None)
    if context is None:  # pragma: no cover - create_app always sets it
        raise RuntimeError("Application context missing")
    return cast(AppContext, context)


__all__ = ["AppContext", "get_app_context", "get_websocket_context"]
