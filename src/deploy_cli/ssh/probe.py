"""Remote host probing utilities."""

from __future__ import annotations

import json
import logging
import posixpath
import shlex
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..paths import DEPLOY_INFO_FILE
from .session import RemoteSession

logger = logging.getLogger(__name__)

COMMON_SERVICES = ("nginx", "apache2", "pm2")


@dataclass
class RemoteHostFacts:
    hostname: str
    os: str
    memory: str
    disk: str

    @property
    def os_short(self) -> str:
        return " ".join(self.os.split()[:3])


@dataclass
class DeployInfo:
    """What is known about the currently deployed release."""

    last_deploy: Optional[str] = None
    current_version: Optional[str] = None
    marker: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ServiceStatus:
    name: str
    status: str

    @property
    def active(self) -> bool:
        return self.status in ("active", "online")


class RemoteProbe:
    """Collects remote host facts by running simple commands."""

    FACT_COMMANDS = {
        "hostname": "hostname",
        "os": "uname -a",
        "memory": "free -h",
        "disk": "df -h",
    }

    def collect(self, session: RemoteSession) -> RemoteHostFacts:
        # Independent queries share the session's transport, one channel each
        with ThreadPoolExecutor(max_workers=len(self.FACT_COMMANDS)) as pool:
            futures = {
                key: pool.submit(session.execute, command)
                for key, command in self.FACT_COMMANDS.items()
            }
            values = {key: future.result().strip() for key, future in futures.items()}
        return RemoteHostFacts(**values)

    def deploy_info(self, session: RemoteSession, deploy_path: str) -> DeployInfo:
        info = DeployInfo()

        marker_path = posixpath.join(deploy_path, DEPLOY_INFO_FILE)
        if session.file_exists(marker_path):
            payload = self._read_json(session, marker_path)
            if isinstance(payload, dict):
                info.marker = payload
                info.last_deploy = payload.get("lastDeploy") or payload.get("last_deploy")
                info.current_version = payload.get("version")

        if not info.last_deploy:
            info.last_deploy = self._safe_execute(
                session, f"stat -c %y {shlex.quote(deploy_path)}"
            )

        if not info.current_version:
            package_path = posixpath.join(deploy_path, "package.json")
            if session.file_exists(package_path):
                package = self._read_json(session, package_path)
                if isinstance(package, dict):
                    info.current_version = package.get("version")
        return info

    def service_statuses(self, session: RemoteSession) -> List[ServiceStatus]:
        services: List[ServiceStatus] = []
        for name in COMMON_SERVICES:
            status = self._safe_execute(
                session, f'systemctl is-active {name} 2>/dev/null || echo "inactive"'
            )
            if status and status != "inactive":
                services.append(ServiceStatus(name=name, status=status))

        raw = self._safe_execute(session, 'pm2 jlist 2>/dev/null || echo "[]"')
        try:
            processes = json.loads(raw or "[]")
        except ValueError:
            processes = []
        for proc in processes if isinstance(processes, list) else []:
            try:
                services.append(
                    ServiceStatus(name=f"pm2-{proc['name']}", status=proc["pm2_env"]["status"])
                )
            except (KeyError, TypeError):
                continue
        return services

    def _read_json(self, session: RemoteSession, path: str) -> Any:
        content = self._safe_execute(session, f"cat {shlex.quote(path)}")
        if not content:
            return None
        try:
            return json.loads(content)
        except ValueError:
            logger.debug("Ignoring unparsable JSON in %s", path)
            return None

    def _safe_execute(self, session: RemoteSession, command: str) -> Optional[str]:
        try:
            return session.execute(command).strip()
        except Exception as exc:
            logger.debug("Probe '%s' failed: %s", command, exc)
            return None
