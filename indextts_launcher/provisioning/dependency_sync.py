"""Remember the last successful ``uv sync`` of each checkout so a repeat can be skipped."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from hashlib import sha256
from pathlib import Path

__all__ = [
    "SYNC_MANIFESTS",
    "SyncRecord",
    "SyncStateStore",
    "compute_sync_fingerprint",
]

logger = logging.getLogger(__name__)

SYNC_MANIFESTS: tuple[str, ...] = ("pyproject.toml", "uv.lock")


@dataclass(slots=True)
class SyncRecord:
    repo_dir: Path
    fingerprint: str
    network: str
    synced_at: datetime


def compute_sync_fingerprint(repo_dir: Path, index_url: str | None = None) -> str:
    """Hash the checkout's uv manifests together with the package index in use.

    A manifest that does not exist hashes differently from an empty one, so
    adding ``uv.lock`` later still forces a sync.
    """

    digest = sha256()
    for name in SYNC_MANIFESTS:
        manifest = Path(repo_dir) / name
        digest.update(name.encode("utf-8"))
        digest.update(manifest.read_bytes() if manifest.is_file() else b"\0absent")
    digest.update((index_url or "default-index").encode("utf-8"))
    return digest.hexdigest()


class SyncStateStore:
    """Keep one JSON record per checkout, named after its resolved path."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _record_path(self, repo_dir: Path) -> Path:
        name = sha256(str(Path(repo_dir).resolve()).encode("utf-8")).hexdigest()[:16]
        return self.root / f"{name}.json"

    def last_sync(self, repo_dir: Path) -> SyncRecord | None:
        path = self._record_path(repo_dir)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return SyncRecord(
                repo_dir=Path(data["repo_dir"]),
                fingerprint=data["fingerprint"],
                network=data["network"],
                synced_at=datetime.fromisoformat(data["synced_at"]),
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("Ignoring unreadable sync record %s", path)
            return None

    def record(self, repo_dir: Path, fingerprint: str, network: str) -> SyncRecord:
        entry = SyncRecord(
            repo_dir=Path(repo_dir).resolve(),
            fingerprint=fingerprint,
            network=network,
            synced_at=datetime.now(UTC),
        )
        self.root.mkdir(parents=True, exist_ok=True)
        payload = {
            "repo_dir": str(entry.repo_dir),
            "fingerprint": entry.fingerprint,
            "network": entry.network,
            "synced_at": entry.synced_at.isoformat(),
        }
        self._record_path(repo_dir).write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return entry

    def is_current(self, repo_dir: Path, fingerprint: str) -> bool:
        entry = self.last_sync(repo_dir)
        return entry is not None and entry.fingerprint == fingerprint
