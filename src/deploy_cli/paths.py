"""Unified path constants for deploy-cli.

All operator state lives under ``~/.deploy-cli`` unless ``DEPLOY_CLI_HOME``
points somewhere else:
- ~/.deploy-cli/config.json    # Tool settings (optional)
- ~/.deploy-cli/servers.json   # Server profiles
"""

from __future__ import annotations

import os
from pathlib import Path

HOME_ENV_VAR = "DEPLOY_CLI_HOME"

DEFAULT_HOME = Path.home() / ".deploy-cli"
SETTINGS_FILE_NAME = "config.json"
SERVERS_FILE_NAME = "servers.json"

# Remote marker written by deployment tooling, read by `status`
DEPLOY_INFO_FILE = ".deploy-info"


def get_home_dir() -> Path:
    override = os.getenv(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return DEFAULT_HOME
