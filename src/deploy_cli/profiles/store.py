"""Persistent server profile store (servers.json)."""

from __future__ import annotations

import json
import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..errors import ConfigError
from .models import Environment, ServerProfile

logger = logging.getLogger(__name__)


class ProfileStore:
    """Maps server names to ServerProfile records stored in one JSON file.

    The file is re-read on every call so callers always observe what is on
    disk. Layout::

        {"servers": {"staging-web": {"environment": "staging", "host": ...}}}
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    def init(self) -> None:
        """Create the store directory and an empty store; existing servers are kept."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        servers = self._read_raw() if self.exists else {}
        self._write_raw(servers)
        logger.info("Profile store ready at %s", self.path)

    def list(self) -> List[ServerProfile]:
        return [ServerProfile.from_dict(name, payload) for name, payload in self._load().items()]

    def names(self) -> List[str]:
        return list(self._load())

    def get(self, name: str) -> Optional[ServerProfile]:
        payload = self._load().get(name)
        if payload is None:
            return None
        return ServerProfile.from_dict(name, payload)

    def add(self, profile: ServerProfile) -> None:
        servers = self._read_raw() if self.exists else {}
        servers[profile.name] = profile.to_dict()
        self._write_raw(servers)
        logger.info("Saved server profile %s", profile.name)

    def remove(self, name: str) -> bool:
        servers = self._load()
        if name not in servers:
            return False
        del servers[name]
        self._write_raw(servers)
        logger.info("Removed server profile %s", name)
        return True

    def resolve(self, environment: Union[Environment, str]) -> ServerProfile:
        """Return the single profile whose ``environment`` field matches exactly."""
        env = environment if isinstance(environment, Environment) else Environment.parse(environment)
        matches = [
            name for name, payload in self._load().items()
            if payload.get("environment") == env.value
        ]
        if not matches:
            raise ConfigError(f"No server profile configured for the {env.value} environment")
        if len(matches) > 1:
            raise ConfigError(
                f"Several server profiles target {env.value}: {', '.join(matches)}; "
                "keep one per environment"
            )
        return self.get(matches[0])  # type: ignore[return-value]

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.exists:
            raise ConfigError(
                f"Profile store {self.path} does not exist; run `deploy-cli config --init` first"
            )
        return self._read_raw()

    def _read_raw(self) -> Dict[str, Dict[str, Any]]:
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle) or {}
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {self.path}: {exc}") from exc
        except OSError as exc:
            raise ConfigError(f"Cannot read {self.path}: {exc}") from exc
        servers = data.get("servers") or {}
        if not isinstance(servers, dict):
            raise ConfigError(f"{self.path}: 'servers' must be an object")
        return servers

    def _write_raw(self, servers: Dict[str, Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            # Profiles may embed passwords or private keys
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                os.fchmod(handle.fileno(), 0o600)
                json.dump({"servers": servers}, handle, ensure_ascii=False, indent=2)
            tmp_path.replace(self.path)
        except OSError as exc:
            raise ConfigError(f"Cannot write {self.path}: {exc}") from exc
