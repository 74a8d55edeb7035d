from __future__ import annotations

from pathlib import Path

import pytest

from indextts_launcher.config import LauncherConfig, config_path, load_config, save_config


def test_defaults_when_nothing_is_persisted(launcher_home: Path) -> None:
    config = load_config()
    assert config.port == 7860
    assert config.api_port == 7861
    assert config.network_environment == "global"
    assert config.existing_dir_policy == "remove-empty"
    assert config.repo_dir == Path.home() / "index-tts"
    assert not config_path().exists()


def test_save_and_load_round_trip(launcher_home: Path, tmp_path: Path) -> None:
    original = LauncherConfig(
        repo_dir=tmp_path / "apps" / "index-tts",
        network_environment="mainland_china",
        hf_endpoint="https://hf-mirror.com",
        port=9000,
        use_fp16=True,
        existing_dir_policy="strict",
    )
    path = save_config(original)
    assert path == launcher_home / "config.toml"
    assert load_config() == original


def test_environment_overrides_file(
    launcher_home: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    save_config(LauncherConfig(repo_dir=tmp_path / "from-file", port=9000))
    monkeypatch.setenv("INDEXTTS_LAUNCHER_REPO_DIR", str(tmp_path / "from-env"))
    monkeypatch.setenv("INDEXTTS_LAUNCHER_PORT", "9100")
    monkeypatch.setenv("HF_ENDPOINT", "https://example.invalid")
    config = load_config()
    assert config.repo_dir == tmp_path / "from-env"
    assert config.port == 9100
    assert config.hf_endpoint == "https://example.invalid"


def test_merged_ignores_unset_overrides(tmp_path: Path) -> None:
    config = LauncherConfig(repo_dir=tmp_path, port=9000)
    merged = config.merged(port=None, use_fp16=True)
    assert merged.port == 9000
    assert merged.use_fp16
    assert not config.use_fp16


def test_invalid_choices_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="network_environment"):
        LauncherConfig(repo_dir=tmp_path, network_environment="moon")
    with pytest.raises(ValueError, match="existing_dir_policy"):
        LauncherConfig(repo_dir=tmp_path, existing_dir_policy="nuke")
