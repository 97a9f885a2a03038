"""Configuration loading utilities for deploy-cli."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .errors import ConfigError
from .paths import SERVERS_FILE_NAME, SETTINGS_FILE_NAME, get_home_dir


@dataclass
class PathsConfig:
    """Where operator state is kept."""

    home: str = field(default_factory=lambda: str(get_home_dir()))
    servers_file: str = SERVERS_FILE_NAME

    @property
    def servers_path(self) -> Path:
        return Path(self.home).expanduser() / self.servers_file


@dataclass
class DeploymentConfig:
    """Settings related to deployment execution."""

    connect_timeout: int = 20
    settle_seconds: float = 3.0          # wait after restart before verifying
    simulate_step_delay: float = 1.0     # per-stage pause in dry-run mode
    upload_concurrency: int = 10
    default_branch: str = "main"
    default_environment: str = "staging"
    default_local_path: str = "."


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    format: str = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"


@dataclass
class AppConfig:
    """Top-level configuration."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        def section(key: str) -> Dict[str, Any]:
            raw = payload.get(key, {}) or {}
            # Keys starting with "_" are comments
            return {k: v for k, v in raw.items() if not k.startswith("_")}

        try:
            return cls(
                paths=PathsConfig(**{**PathsConfig().__dict__, **section("paths")}),
                deployment=DeploymentConfig(
                    **{**DeploymentConfig().__dict__, **section("deployment")}
                ),
                logging=LoggingConfig(**{**LoggingConfig().__dict__, **section("logging")}),
            )
        except TypeError as exc:
            raise ConfigError(f"Unknown configuration key: {exc}") from exc


def _env_number(name: str, cast):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigError(f"Environment variable {name} is not a valid number: {raw!r}") from exc


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Environment variables (higher priority than the config file):
    - DEPLOY_CLI_HOME: Directory holding servers.json and config.json
    - DEPLOY_CLI_SETTLE_SECONDS: Pause after a service restart
    - DEPLOY_CLI_CONNECT_TIMEOUT: SSH connect timeout in seconds
    - DEPLOY_CLI_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ...)
    """
    load_dotenv()

    if path:
        candidate = Path(path).expanduser()
        if not candidate.is_file():
            raise ConfigError(f"Configuration file not found: {candidate}")
    else:
        candidate = get_home_dir() / SETTINGS_FILE_NAME

    data: Dict[str, Any] = {}
    if candidate.is_file():
        try:
            with candidate.open("r", encoding="utf-8") as handle:
                data = json.load(handle) or {}
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {candidate}: {exc}") from exc

    config = AppConfig.from_dict(data)

    env_home = os.getenv("DEPLOY_CLI_HOME")
    if env_home:
        config.paths.home = env_home

    settle = _env_number("DEPLOY_CLI_SETTLE_SECONDS", float)
    if settle is not None:
        config.deployment.settle_seconds = settle

    timeout = _env_number("DEPLOY_CLI_CONNECT_TIMEOUT", int)
    if timeout is not None:
        config.deployment.connect_timeout = timeout

    env_level = os.getenv("DEPLOY_CLI_LOG_LEVEL")
    if env_level:
        config.logging.level = env_level.upper()

    return config
