"""Tests for sync fingerprints and the per-checkout sync record."""

from __future__ import annotations

from pathlib import Path

import pytest

from indextts_launcher.provisioning import SyncStateStore, compute_sync_fingerprint


@pytest.fixture()
def checkout(tmp_path: Path) -> Path:
    repo_dir = tmp_path / "index-tts"
    repo_dir.mkdir()
    (repo_dir / "pyproject.toml").write_text("[project]\nversion = '1'\n")
    return repo_dir


def test_fingerprint_follows_manifest_contents(checkout: Path) -> None:
    first = compute_sync_fingerprint(checkout)
    assert compute_sync_fingerprint(checkout) == first
    (checkout / "pyproject.toml").write_text("[project]\nversion = '2'\n")
    assert compute_sync_fingerprint(checkout) != first


def test_new_lockfile_changes_fingerprint_even_when_empty(checkout: Path) -> None:
    without_lock = compute_sync_fingerprint(checkout)
    (checkout / "uv.lock").write_text("")
    assert compute_sync_fingerprint(checkout) != without_lock


def test_package_index_is_part_of_fingerprint(checkout: Path) -> None:
    default = compute_sync_fingerprint(checkout)
    assert compute_sync_fingerprint(checkout, None) == default
    assert compute_sync_fingerprint(checkout, "https://mirror.example/simple") != default


def test_record_is_kept_per_checkout(checkout: Path, tmp_path: Path) -> None:
    store = SyncStateStore(tmp_path / "state")
    other = tmp_path / "other-checkout"
    assert store.last_sync(checkout) is None
    assert not store.is_current(checkout, "abc")

    entry = store.record(checkout, "abc", "mainland_china")

    assert entry.repo_dir == checkout.resolve()
    assert store.is_current(checkout, "abc")
    assert not store.is_current(checkout, "def")
    assert not store.is_current(other, "abc")
    loaded = store.last_sync(checkout)
    assert loaded is not None
    assert loaded.network == "mainland_china"
    assert loaded.synced_at == entry.synced_at


def test_unreadable_record_means_sync_again(checkout: Path, tmp_path: Path) -> None:
    store = SyncStateStore(tmp_path / "state")
    store.record(checkout, "abc", "global")
    next((tmp_path / "state").glob("*.json")).write_text('{"fingerprint": "abc"}')
    assert store.last_sync(checkout) is None
    assert not store.is_current(checkout, "abc")
