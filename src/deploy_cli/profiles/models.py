"""Server profile data model."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..errors import ConfigError, ValidationError
from ..ssh.credentials import (
    Credential,
    PasswordCredential,
    PrivateKeyCredential,
    credential_from_dict,
    credential_to_dict,
)
from ..ssh.session import FileMapping


class Environment(str, Enum):
    """Closed set of deployment targets."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def parse(cls, name: str) -> "Environment":
        try:
            return cls(name)
        except ValueError:
            valid = ", ".join(env.value for env in cls)
            raise ValidationError(f"Invalid environment: {name}. Valid environments: {valid}") from None


class UploadMode(str, Enum):
    TREE = "tree"      # sync the whole build output directory
    FILES = "files"    # transfer an explicit file list

    @classmethod
    def parse(cls, value: Optional[str]) -> "UploadMode":
        # "rsync" is what older profiles call whole-tree mode
        if value in (None, "", "rsync", "tree"):
            return cls.TREE
        try:
            return cls(value)
        except ValueError:
            raise ConfigError(f"Unknown upload mode: {value}") from None


@dataclass(frozen=True)
class ProjectPreset:
    """Default stage commands offered by the configuration wizard."""
    build_command_local: str = ""
    install_command_remote: str = ""
    build_command_remote: str = ""
    restart_command_remote: str = ""
    verify_command_remote: str = ""


PROJECT_PRESETS: Dict[str, ProjectPreset] = {
    "Node.js": ProjectPreset(
        build_command_local="npm run build",
        install_command_remote="npm install --production",
        restart_command_remote="pm2 restart app",
        verify_command_remote="curl -f http://localhost:3000/health || exit 1",
    ),
    "React/Vue SPA": ProjectPreset(
        build_command_local="npm run build",
        install_command_remote="npm install",
        build_command_remote="npm run build",
        restart_command_remote="sudo systemctl reload nginx",
        verify_command_remote="curl -f http://localhost/ || exit 1",
    ),
    "Static HTML": ProjectPreset(
        restart_command_remote="sudo systemctl reload nginx",
        verify_command_remote="curl -f http://localhost/ || exit 1",
    ),
    "PHP": ProjectPreset(
        install_command_remote="composer install --no-dev",
        restart_command_remote="sudo systemctl reload php-fpm && sudo systemctl reload nginx",
        verify_command_remote="curl -f http://localhost/ || exit 1",
    ),
    "Python": ProjectPreset(
        install_command_remote="pip install -r requirements.txt",
        restart_command_remote="sudo systemctl restart gunicorn",
        verify_command_remote="curl -f http://localhost:8000/health || exit 1",
    ),
}
PROJECT_TYPES = tuple(PROJECT_PRESETS) + ("Other",)


def preset_for(project_type: Optional[str]) -> ProjectPreset:
    return PROJECT_PRESETS.get(project_type or "", ProjectPreset())


def _require_absolute(name: str, value: str) -> None:
    if not value or not posixpath.isabs(value):
        raise ConfigError(f"{name} must be a non-empty absolute path, got {value!r}")


@dataclass(frozen=True)
class ServerProfile:
    """Resolved, immutable connection and command configuration for one target."""

    name: str
    environment: Environment
    host: str
    username: str
    credential: Credential
    deploy_path: str
    backup_path: str
    port: int = 22
    upload_mode: UploadMode = UploadMode.TREE
    local_path: str = "."
    files: Tuple[FileMapping, ...] = ()
    build_command_local: str = ""
    install_command_remote: str = ""
    build_command_remote: str = ""
    restart_command_remote: str = ""
    verify_command_remote: str = ""
    public_url: Optional[str] = None
    project_type: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def __post_init__(self) -> None:
        if not self.host:
            raise ConfigError(f"Profile {self.name!r}: host is required")
        if not self.username:
            raise ConfigError(f"Profile {self.name!r}: username is required")
        if not 1 <= int(self.port) <= 65535:
            raise ConfigError(f"Profile {self.name!r}: invalid port {self.port}")
        if not isinstance(self.credential, (PasswordCredential, PrivateKeyCredential)):
            raise ConfigError(f"Profile {self.name!r}: exactly one credential kind is required")
        if not isinstance(self.environment, Environment):
            object.__setattr__(self, "environment", Environment.parse(self.environment))
        _require_absolute("deployPath", self.deploy_path)
        _require_absolute("backupPath", self.backup_path)

    @property
    def auth_method(self) -> str:
        return "password" if isinstance(self.credential, PasswordCredential) else "key"

    @classmethod
    def from_dict(cls, name: str, payload: Dict[str, Any]) -> "ServerProfile":
        """Build a profile from its persisted form.

        Field names follow the store layout (camelCase). The older names
        ``buildCommand``, ``installCommand``, ``restartCommand``,
        ``verifyCommand``, ``uploadType`` and ``url`` are accepted too.
        """
        def pick(*keys: str, default: Any = "") -> Any:
            for key in keys:
                value = payload.get(key)
                if value not in (None, ""):
                    return value
            return default

        environment = pick("environment", default=None)
        if environment is None:
            raise ConfigError(f"Profile {name!r} has no environment field")
        try:
            port = int(pick("port", default=22))
        except (TypeError, ValueError):
            raise ConfigError(f"Profile {name!r}: invalid port {payload.get('port')!r}") from None

        files = tuple(
            FileMapping(local=entry["local"], remote=entry.get("remote"))
            if isinstance(entry, dict) else FileMapping(local=str(entry))
            for entry in payload.get("files") or ()
        )
        return cls(
            name=name,
            environment=Environment.parse(environment),
            host=pick("host"),
            username=pick("username"),
            credential=credential_from_dict(payload),
            deploy_path=pick("deployPath"),
            backup_path=pick("backupPath"),
            port=port,
            upload_mode=UploadMode.parse(pick("uploadMode", "uploadType", default=None)),
            local_path=pick("localPath", default="."),
            files=files,
            build_command_local=pick("buildCommandLocal", "buildCommand"),
            install_command_remote=pick("installCommandRemote", "installCommand"),
            build_command_remote=pick("buildCommandRemote"),
            restart_command_remote=pick("restartCommandRemote", "restartCommand"),
            verify_command_remote=pick("verifyCommandRemote", "verifyCommand"),
            public_url=pick("publicUrl", "url", default=None),
            project_type=pick("projectType", default=None),
            created_at=pick("createdAt", default=datetime.now(timezone.utc).isoformat()),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "environment": self.environment.value,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            **credential_to_dict(self.credential),
            "deployPath": self.deploy_path,
            "backupPath": self.backup_path,
            "uploadMode": self.upload_mode.value,
            "localPath": self.local_path,
            "buildCommandLocal": self.build_command_local,
            "installCommandRemote": self.install_command_remote,
            "buildCommandRemote": self.build_command_remote,
            "restartCommandRemote": self.restart_command_remote,
            "verifyCommandRemote": self.verify_command_remote,
            "createdAt": self.created_at,
        }
        if self.files:
            payload["files"] = [
                {"local": f.local, "remote": f.remote} if f.remote else {"local": f.local}
                for f in self.files
            ]
        if self.public_url:
            payload["publicUrl"] = self.public_url
        if self.project_type:
            payload["projectType"] = self.project_type
        return payload
