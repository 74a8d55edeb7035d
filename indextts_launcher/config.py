"""Persisted launcher settings shared by the CLI and the control API."""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

__all__ = [
    "LauncherConfig",
    "config_path",
    "launcher_home",
    "load_config",
    "save_config",
    "state_dir",
]

_CONFIG_FILENAME = "config.toml"
_DEFAULT_PORT = 7860
_DEFAULT_API_PORT = 7861
_ENV_HOME = "INDEXTTS_LAUNCHER_HOME"
_ENV_REPO_DIR = "INDEXTTS_LAUNCHER_REPO_DIR"
_ENV_NETWORK = "INDEXTTS_LAUNCHER_NETWORK"
_ENV_PORT = "INDEXTTS_LAUNCHER_PORT"
_ENV_LOG_LEVEL = "INDEXTTS_LAUNCHER_LOG_LEVEL"
_ENV_HF_ENDPOINT = "HF_ENDPOINT"

NETWORK_ENVIRONMENTS = ("global", "mainland_china")
EXISTING_DIR_POLICIES = ("remove-empty", "strict")


def _default_repo_dir() -> Path:
    return Path.home() / "index-tts"


@dataclass(slots=True)
class LauncherConfig:
    """Represents persisted launcher settings."""

    repo_dir: Path = field(default_factory=_default_repo_dir)
    network_environment: str = "global"
    model_dir: str = "checkpoints"
    hf_endpoint: str | None = None
    port: int = _DEFAULT_PORT
    use_fp16: bool = False
    use_deepspeed: bool = False
    existing_dir_policy: str = "remove-empty"
    api_host: str = "127.0.0.1"
    api_port: int = _DEFAULT_API_PORT
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.repo_dir = Path(self.repo_dir).expanduser()
        if self.network_environment not in NETWORK_ENVIRONMENTS:
            raise ValueError(
                f"network_environment must be one of {', '.join(NETWORK_ENVIRONMENTS)}"
            )
        if self.existing_dir_policy not in EXISTING_DIR_POLICIES:
            raise ValueError(
                f"existing_dir_policy must be one of {', '.join(EXISTING_DIR_POLICIES)}"
            )

    def merged(self, **overrides: Any) -> LauncherConfig:
        """Return a copy that applies the non-``None`` CLI/env overrides."""

        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)


def launcher_home(create: bool = False) -> Path:
    custom = os.environ.get(_ENV_HOME)
    base = Path(custom) if custom else Path.home() / ".indextts-launcher"
    if create:
        base.mkdir(parents=True, exist_ok=True)
    return base


def config_path() -> Path:
    """Return the path to the persisted launcher configuration."""

    return launcher_home(create=False) / _CONFIG_FILENAME


def state_dir() -> Path:
    path = launcher_home(create=True) / "state"
    path.mkdir(parents=True, exist_ok=True)
    return path


def load_config() -> LauncherConfig:
    """Load configuration from disk + environment overrides."""

    data: dict[str, Any] = {}
    path = config_path()
    if path.exists():
        data = tomllib.loads(path.read_text(encoding="utf-8"))

    config = LauncherConfig(
        repo_dir=Path(data.get("repo_dir") or _default_repo_dir()),
        network_environment=str(data.get("network_environment", "global")),
        model_dir=str(data.get("model_dir", "checkpoints")),
        hf_endpoint=data.get("hf_endpoint") or None,
        port=int(data.get("port", _DEFAULT_PORT)),
        use_fp16=bool(data.get("use_fp16", False)),
        use_deepspeed=bool(data.get("use_deepspeed", False)),
        existing_dir_policy=str(data.get("existing_dir_policy", "remove-empty")),
        api_host=str(data.get("api_host", "127.0.0.1")),
        api_port=int(data.get("api_port", _DEFAULT_API_PORT)),
        log_level=str(data.get("log_level", "INFO")),
    )

    env_repo = os.environ.get(_ENV_REPO_DIR)
    env_port = os.environ.get(_ENV_PORT)
    return config.merged(
        repo_dir=Path(env_repo) if env_repo else None,
        network_environment=os.environ.get(_ENV_NETWORK),
        port=int(env_port) if env_port else None,
        log_level=os.environ.get(_ENV_LOG_LEVEL),
        hf_endpoint=os.environ.get(_ENV_HF_ENDPOINT),
    )


def save_config(config: LauncherConfig) -> Path:
    """Persist configuration to ~/.indextts-launcher/config.toml."""

    base = launcher_home(create=True)
    path = base / _CONFIG_FILENAME
    lines = [
        f"repo_dir = {json.dumps(str(config.repo_dir))}",
        f"network_environment = {json.dumps(config.network_environment)}",
        f"model_dir = {json.dumps(config.model_dir)}",
        f"hf_endpoint = {json.dumps(config.hf_endpoint or '')}",
        f"port = {config.port}",
        f"use_fp16 = {'true' if config.use_fp16 else 'false'}",
        f"use_deepspeed = {'true' if config.use_deepspeed else 'false'}",
        f"existing_dir_policy = {json.dumps(config.existing_dir_policy)}",
        f"api_host = {json.dumps(config.api_host)}",
        f"api_port = {config.api_port}",
        f"log_level = {json.dumps(config.log_level)}",
        "",
    ]
    path.write_text("\n".join(lines), encoding="utf-8")
    return path
