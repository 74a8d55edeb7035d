"""The end-to-end deployment of the TTS server as a sequence of steps."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from indextts_launcher.config import LauncherConfig
from indextts_launcher.runner import StepRunner

from .dependency_sync import SyncStateStore
from .environment import DOWNLOAD_TOOLS, EnvironmentManager, ModelSource, NetworkEnvironment
from .repository import CheckoutOutcome, ExistingDirectoryPolicy, RepositoryManager

__all__ = ["DeployReport", "Deployer"]

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DeployReport:
    repo_dir: Path
    checkout: CheckoutOutcome
    synced: bool
    completed: list[str] = field(default_factory=list)


class Deployer:
    """Checkout, LFS, environment sync, download tools, then model weights.

    Phases run in order and the first failure propagates; nothing already
    done is rolled back.
    """

    def __init__(self, repository: RepositoryManager, environment: EnvironmentManager) -> None:
        self.repository = repository
        self.environment = environment

    @classmethod
    def from_config(
        cls,
        steps: StepRunner,
        config: LauncherConfig,
        *,
        state_store: SyncStateStore | None = None,
    ) -> Deployer:
        repository = RepositoryManager(
            steps, policy=ExistingDirectoryPolicy(config.existing_dir_policy)
        )
        environment = EnvironmentManager(steps, state_store=state_store)
        return cls(repository, environment)

    def deploy(
        self,
        repo_dir: Path,
        network: NetworkEnvironment,
        *,
        model_dir: str | None = None,
        source: ModelSource | None = None,
        force_sync: bool = False,
    ) -> DeployReport:
        repo_dir = Path(repo_dir).expanduser()
        logger.info("Deploying IndexTTS2 into %s (%s)", repo_dir, network.value)
        checkout = self.repository.ensure_checkout(repo_dir)
        report = DeployReport(repo_dir=repo_dir, checkout=checkout, synced=False)
        report.completed.append("checkout")
        self.repository.init_lfs(repo_dir)
        report.completed.append("lfs")
        report.synced = self.environment.sync(repo_dir, network, force=force_sync)
        report.completed.append("sync")
        self.environment.install_tools(repo_dir, DOWNLOAD_TOOLS)
        report.completed.append("tools")
        self.environment.download_model(repo_dir, network, source=source, save_path=model_dir)
        report.completed.append("model")
        logger.info("Deployment finished: %s", ", ".join(report.completed))
        return report
