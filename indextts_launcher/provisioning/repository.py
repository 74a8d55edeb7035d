"""Clone, verify, and repair the IndexTTS2 working copy."""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from pathlib import Path

from indextts_launcher.errors import RepositoryError
from indextts_launcher.runner import CommandRunner, CommandSpec, StepRunner

__all__ = [
    "INDEX_TTS_REMOTE",
    "REQUIRED_FILES",
    "CheckoutOutcome",
    "ExistingDirectoryPolicy",
    "RepositoryManager",
]

logger = logging.getLogger(__name__)

INDEX_TTS_REMOTE = "https://github.com/index-tts/index-tts.git"
REQUIRED_FILES: tuple[str, ...] = ("webui.py", "pyproject.toml")


class ExistingDirectoryPolicy(str, enum.Enum):
    """What to do with a target directory that exists but is not a working copy."""

    REMOVE_EMPTY = "remove-empty"
    STRICT = "strict"


class CheckoutOutcome(str, enum.Enum):
    CLONED = "cloned"
    EXISTING = "existing"
    REPAIRED = "repaired"


class RepositoryManager:
    """Drive git through the step runner for the server checkout."""

    def __init__(
        self,
        steps: StepRunner,
        *,
        remote_url: str = INDEX_TTS_REMOTE,
        required_files: Sequence[str] = REQUIRED_FILES,
        policy: ExistingDirectoryPolicy = ExistingDirectoryPolicy.REMOVE_EMPTY,
    ) -> None:
        self.steps = steps
        self.remote_url = remote_url
        self.required_files = tuple(required_files)
        self.policy = ExistingDirectoryPolicy(policy)

    @property
    def runner(self) -> CommandRunner:
        return self.steps.runner

    # ------------------------------------------------------------------ queries
    @staticmethod
    def check(repo_dir: Path | str | None) -> bool:
        """Return whether ``repo_dir`` is a directory holding a ``.git`` folder."""

        if repo_dir is None or not str(repo_dir).strip():
            return False
        path = Path(str(repo_dir).strip()).expanduser()
        return path.is_dir() and (path / ".git").is_dir()

    def is_working_copy(self, repo_dir: Path) -> bool:
        """Return whether ``repo_dir`` is the top level of a git working copy."""

        result = self.runner.run(
            CommandSpec.of("git", "-C", str(repo_dir), "rev-parse", "--show-toplevel")
        )
        if not result.ok or not result.stdout.strip():
            return False
        return Path(result.stdout.strip()).resolve() == Path(repo_dir).resolve()

    def missing_files(self, repo_dir: Path) -> list[str]:
        return [name for name in self.required_files if not (repo_dir / name).is_file()]

    # ------------------------------------------------------------------ operations
    def ensure_checkout(self, repo_dir: Path) -> CheckoutOutcome:
        """Make ``repo_dir`` a complete working copy of the server repository."""

        repo_dir = Path(repo_dir).expanduser()
        if repo_dir.exists():
            if not repo_dir.is_dir():
                raise RepositoryError(f"Target path '{repo_dir}' exists and is not a directory.")
            if self.is_working_copy(repo_dir):
                return self.ensure_complete(repo_dir)
            self._clear_existing(repo_dir)
        repo_dir.parent.mkdir(parents=True, exist_ok=True)
        self.steps.run_step("clone", CommandSpec.of("git", "clone", self.remote_url, str(repo_dir)))
        missing = self.missing_files(repo_dir)
        if missing:
            raise RepositoryError(
                f"Fresh clone at '{repo_dir}' is missing {', '.join(missing)}. "
                "Check the remote URL and retry."
            )
        return CheckoutOutcome.CLONED

    def ensure_complete(self, repo_dir: Path) -> CheckoutOutcome:
        """Run at most one reset + clean cycle when required files are missing."""

        missing = self.missing_files(repo_dir)
        if not missing:
            return CheckoutOutcome.EXISTING
        logger.warning("Working copy %s is missing %s; repairing", repo_dir, ", ".join(missing))
        self.repair(repo_dir)
        missing = self.missing_files(repo_dir)
        if missing:
            raise RepositoryError(
                f"Repository at '{repo_dir}' is still missing {', '.join(missing)} after repair. "
                f"Delete the directory '{repo_dir}' and retry."
            )
        return CheckoutOutcome.REPAIRED

    def repair(self, repo_dir: Path) -> None:
        git = ("git", "-C", str(repo_dir))
        self.steps.run_steps(
            [
                ("repair-reset", CommandSpec.of(*git, "reset", "--hard", "HEAD")),
                ("repair-clean", CommandSpec.of(*git, "clean", "-fd")),
            ]
        )

    def init_lfs(self, repo_dir: Path) -> None:
        repo_dir = Path(repo_dir).expanduser()
        self.steps.run_steps(
            [
                ("lfs-install", CommandSpec.of("git", "-C", str(repo_dir), "lfs", "install")),
                ("lfs-pull", CommandSpec.of("git", "-C", str(repo_dir), "lfs", "pull")),
            ]
        )

    # ------------------------------------------------------------------ helpers
    def _clear_existing(self, repo_dir: Path) -> None:
        is_empty = not any(repo_dir.iterdir())
        if is_empty and self.policy is ExistingDirectoryPolicy.REMOVE_EMPTY:
            logger.info("Removing empty directory %s before cloning", repo_dir)
            repo_dir.rmdir()
            return
        raise RepositoryError(f"Target directory '{repo_dir}' exists but is not a git repository.")
