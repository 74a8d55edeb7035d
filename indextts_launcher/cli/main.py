"""Click-based CLI for deploying and running IndexTTS2 locally."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

import click
import typer

from indextts_launcher.cli.diagnose import diagnose_app
from indextts_launcher.config import (
    EXISTING_DIR_POLICIES,
    NETWORK_ENVIRONMENTS,
    LauncherConfig,
    launcher_home,
    load_config,
    save_config,
    state_dir,
)
from indextts_launcher.errors import LauncherError
from indextts_launcher.provisioning import (
    INSTALLABLE_TOOLS,
    Deployer,
    EnvironmentManager,
    ExistingDirectoryPolicy,
    ModelSource,
    NetworkEnvironment,
    RepositoryManager,
    SyncStateStore,
    Toolchain,
    server_spec,
)
from indextts_launcher.runner import (
    STDERR,
    CommandRunner,
    LogFileSink,
    PortReclaimer,
    ServerStatus,
    ServerSupervisor,
    Sink,
    StepRunner,
    StreamLine,
    TeeSink,
)

T = TypeVar("T")


class EchoSink:
    """Print forwarded lines to the terminal, stderr lines to stderr."""

    def emit(self, line: StreamLine) -> None:
        prefix = f"[{line.step}] " if line.step else ""
        click.echo(f"{prefix}{line.text}", err=line.stream == STDERR)


@dataclass
class CLIState:
    settings: LauncherConfig
    runner: CommandRunner
    sink: Sink

    def steps(self) -> StepRunner:
        return StepRunner(self.runner, self.sink)

    def repository(self) -> RepositoryManager:
        return RepositoryManager(
            self.steps(), policy=ExistingDirectoryPolicy(self.settings.existing_dir_policy)
        )

    def environment(self) -> EnvironmentManager:
        return EnvironmentManager(self.steps(), state_store=SyncStateStore(state_dir() / "sync"))

    def network(self, override: str | None = None) -> NetworkEnvironment:
        return NetworkEnvironment(override or self.settings.network_environment)


def _guard(action: Callable[[], T]) -> T:
    try:
        return action()
    except LauncherError as exc:
        raise click.ClickException(str(exc)) from exc


@contextmanager
def _server_log(path: Path | None) -> Iterator[LogFileSink | None]:
    if path is None:
        yield None
        return
    with LogFileSink(path) as sink:
        yield sink


_network_option = click.option(
    "--network",
    type=click.Choice(NETWORK_ENVIRONMENTS),
    help="Network environment; mainland_china switches to domestic mirrors.",
)


@click.group()
@click.option("--repo-dir", type=click.Path(path_type=Path), help="IndexTTS2 checkout to manage.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Launcher log verbosity.",
)
@click.pass_context
def app(ctx: click.Context, repo_dir: Path | None, log_level: str | None) -> None:
    """Deploy, provision and run the IndexTTS2 web UI."""

    config = load_config().merged(repo_dir=repo_dir, log_level=log_level)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = CLIState(settings=config, runner=CommandRunner(), sink=EchoSink())


@app.command()
@click.option("--repo-dir", type=click.Path(path_type=Path), help="Where IndexTTS2 is checked out.")
@_network_option
@click.option("--port", type=int, help="Port the web UI listens on.")
@click.option("--hf-endpoint", help="Hugging Face endpoint passed to the server.")
@click.option("--fp16/--no-fp16", default=None, help="Run inference in half precision.")
@click.option("--deepspeed/--no-deepspeed", default=None, help="Enable DeepSpeed acceleration.")
@click.option(
    "--existing-dir-policy",
    type=click.Choice(EXISTING_DIR_POLICIES),
    help="How a non-repository directory at the target path is treated.",
)
@click.pass_obj
def configure(
    state: CLIState,
    repo_dir: Path | None,
    network: str | None,
    port: int | None,
    hf_endpoint: str | None,
    fp16: bool | None,
    deepspeed: bool | None,
    existing_dir_policy: str | None,
) -> None:
    """Persist default launcher settings under ~/.indextts-launcher/config.toml."""

    config = state.settings.merged(
        repo_dir=repo_dir,
        network_environment=network,
        port=port,
        hf_endpoint=hf_endpoint,
        use_fp16=fp16,
        use_deepspeed=deepspeed,
        existing_dir_policy=existing_dir_policy,
    )
    path = save_config(config)
    click.echo(f"Saved configuration to {path}.")


@app.command()
@_network_option
@click.option(
    "--source",
    type=click.Choice([source.value for source in ModelSource]),
    help="Model hub to download from; defaults to the network's preferred hub.",
)
@click.option("--model-dir", help="Directory (relative to the checkout) for model weights.")
@click.option("--force-sync", is_flag=True, help="Run uv sync even if nothing changed.")
@click.pass_obj
def deploy(
    state: CLIState,
    network: str | None,
    source: str | None,
    model_dir: str | None,
    force_sync: bool,
) -> None:
    """Clone, provision and download everything the server needs."""

    deployer = Deployer(state.repository(), state.environment())
    report = _guard(
        lambda: deployer.deploy(
            state.settings.repo_dir,
            state.network(network),
            model_dir=model_dir or state.settings.model_dir,
            source=ModelSource(source) if source else None,
            force_sync=force_sync,
        )
    )
    click.echo(f"Deployment complete in {report.repo_dir} ({report.checkout.value}).")


# ---------------------------------------------------------------------- repo
@app.group()
def repo() -> None:
    """Repository checkout commands."""


@repo.command("clone")
@click.pass_obj
def repo_clone(state: CLIState) -> None:
    """Clone the repository, or repair an incomplete checkout."""

    outcome = _guard(lambda: state.repository().ensure_checkout(state.settings.repo_dir))
    click.echo(f"Repository ready at {state.settings.repo_dir} ({outcome.value}).")


@repo.command("check")
@click.pass_obj
def repo_check(state: CLIState) -> None:
    """Report whether the configured directory is a git working copy."""

    repo_dir = state.settings.repo_dir
    if not RepositoryManager.check(repo_dir):
        raise click.ClickException(f"No repository found at {repo_dir}.")
    missing = state.repository().missing_files(repo_dir)
    if missing:
        raise click.ClickException(
            f"Repository at {repo_dir} is missing: {', '.join(missing)}."
        )
    click.echo(f"Repository at {repo_dir} is complete.")


@repo.command("lfs")
@click.pass_obj
def repo_lfs(state: CLIState) -> None:
    """Install git-lfs hooks and pull large files."""

    _guard(lambda: state.repository().init_lfs(state.settings.repo_dir))
    click.echo("Large files pulled.")


# ---------------------------------------------------------------------- env
@app.group()
def env() -> None:
    """Python environment and model commands."""


@env.command("sync")
@_network_option
@click.option("--force", is_flag=True, help="Run uv sync even if nothing changed.")
@click.pass_obj
def env_sync(state: CLIState, network: str | None, force: bool) -> None:
    """Install the server's Python dependencies with uv."""

    ran = _guard(
        lambda: state.environment().sync(
            state.settings.repo_dir, state.network(network), force=force
        )
    )
    click.echo("Dependencies synchronized." if ran else "Dependencies already up to date.")


@env.command("tools")
@click.argument("tools", nargs=-1)
@click.pass_obj
def env_tools(state: CLIState, tools: tuple[str, ...]) -> None:
    """Install model download tools with uv (defaults to the hub CLIs)."""

    environment = state.environment()
    if tools:
        _guard(lambda: environment.install_tools(state.settings.repo_dir, tools))
    else:
        _guard(lambda: environment.install_tools(state.settings.repo_dir))
    click.echo("Download tools installed.")


@env.command("model")
@_network_option
@click.option("--source", type=click.Choice([source.value for source in ModelSource]))
@click.option("--save-path", help="Directory (relative to the checkout) for model weights.")
@click.pass_obj
def env_model(
    state: CLIState, network: str | None, source: str | None, save_path: str | None
) -> None:
    """Download the IndexTTS2 model weights."""

    _guard(
        lambda: state.environment().download_model(
            state.settings.repo_dir,
            state.network(network),
            source=ModelSource(source) if source else None,
            save_path=save_path or state.settings.model_dir,
        )
    )
    click.echo("Model downloaded.")


# ---------------------------------------------------------------------- server
@app.group()
def server() -> None:
    """Web UI server commands."""


@server.command("run")
@click.option("--port", type=int, help="Port the web UI listens on.")
@click.option("--fp16/--no-fp16", default=None)
@click.option("--deepspeed/--no-deepspeed", default=None)
@click.option(
    "--log-file/--no-log-file",
    default=True,
    show_default=True,
    help="Also write server output to <home>/logs/server.log.",
)
@click.pass_obj
def server_run(
    state: CLIState,
    port: int | None,
    fp16: bool | None,
    deepspeed: bool | None,
    log_file: bool,
) -> None:
    """Run the web UI in the foreground until Ctrl-C."""

    config = state.settings.merged(port=port, use_fp16=fp16, use_deepspeed=deepspeed)
    spec = server_spec(
        config.repo_dir,
        port=config.port,
        hf_endpoint=config.hf_endpoint,
        use_fp16=config.use_fp16,
        use_deepspeed=config.use_deepspeed,
        model_dir=config.model_dir,
    )
    log_path = launcher_home(create=True) / "logs" / "server.log" if log_file else None
    with _server_log(log_path) as file_sink:
        sink: Sink = TeeSink([state.sink, file_sink]) if file_sink else state.sink
        supervisor = ServerSupervisor(
            state.runner, sink, reclaimer=PortReclaimer(state.runner), port=config.port
        )
        _guard(lambda: supervisor.start(spec))
        click.echo(f"IndexTTS2 starting on http://127.0.0.1:{config.port} (pid {supervisor.pid}).")
        try:
            while supervisor.status() is ServerStatus.RUNNING:
                time.sleep(0.5)
        except KeyboardInterrupt:
            click.echo("Stopping IndexTTS2...")
        finally:
            _guard(supervisor.stop)
    click.echo("Server stopped.")


@server.command("free-port")
@click.option("--port", type=int, help="Port to reclaim; defaults to the configured port.")
@click.pass_obj
def server_free_port(state: CLIState, port: int | None) -> None:
    """Kill whatever still listens on the server port."""

    target = port or state.settings.port
    _guard(lambda: PortReclaimer(state.runner).ensure_closed(target))
    click.echo(f"Port {target} is free.")


# ---------------------------------------------------------------------- install
@app.command("install")
@click.argument("tool", type=click.Choice(INSTALLABLE_TOOLS))
@click.pass_obj
def install(state: CLIState, tool: str) -> None:
    """Install a prerequisite with the platform package manager."""

    _guard(lambda: Toolchain(state.steps()).install(tool))
    click.echo(f"{tool} installed.")


# ---------------------------------------------------------------------- serve
@app.command()
@click.option("--host", help="Interface for the control API.")
@click.option("--port", type=int, help="Port for the control API.")
@click.pass_obj
def serve(state: CLIState, host: str | None, port: int | None) -> None:
    """Run the local control API consumed by the desktop UI."""

    import uvicorn

    from indextts_launcher.api import AppContext, create_app

    config = state.settings.merged(api_host=host, api_port=port)
    context = AppContext.from_config(config)
    uvicorn.run(
        create_app(context),
        host=config.api_host,
        port=config.api_port,
        log_level=config.log_level.lower(),
    )


app.add_command(typer.main.get_command(diagnose_app), name="diagnose")


__all__ = ["CLIState", "EchoSink", "app"]
