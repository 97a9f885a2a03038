"""High-level workflows behind the CLI commands."""

from __future__ import annotations

import logging
import posixpath
import shlex
import socket
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from .config import AppConfig
from .errors import DeployError, SSHConnectionError
from .gitops import GitRepositoryManager
from .interaction import CLIInteractionHandler, UserInteractionHandler
from .local import LocalSession
from .orchestrator import DeploymentOrchestrator, DeploymentReport, DeploymentRequest
from .profiles import Environment, ProfileStore, ProfileWizard, ServerProfile
from .reporting import ConsoleReporter, ProgressReporter
from .ssh import DeployInfo, RemoteHostFacts, RemoteProbe, RemoteSession, RemoteStream, ServiceStatus, SSHSession

logger = logging.getLogger(__name__)

LOG_CANDIDATES = (
    "{deploy}/logs/app.log",
    "{deploy}/app.log",
    "/var/log/nginx/access.log",
    "/var/log/nginx/error.log",
)


def check_port(host: str, port: int, timeout: float = 3.0) -> bool:
    """Return True when a TCP connection to host:port succeeds."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


@dataclass
class StatusReport:
    profile: ServerProfile
    facts: RemoteHostFacts
    deploy_info: DeployInfo
    services: List[ServiceStatus] = field(default_factory=list)


@dataclass
class LogSnapshot:
    path: str
    text: str


class LogTail:
    """
    Cancellable iterator over a followed remote log.

    Iteration ends when :meth:`stop` is called or the remote side closes
    the channel. The owning session is disconnected exactly once, either
    when iteration ends or on :meth:`close`.
    """

    def __init__(self, session: RemoteSession, stream: RemoteStream, path: str) -> None:
        self.session = session
        self.path = path
        self._stream = stream
        self._stopped = threading.Event()
        self._lock = threading.Lock()
        self._released = False

    def __iter__(self) -> Iterator[str]:
        try:
            for line in self._stream:
                if self._stopped.is_set():
                    break
                yield line
        finally:
            self.close()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        self._stopped.set()
        self._stream.close()

    def close(self) -> None:
        self.stop()
        with self._lock:
            if self._released:
                return
            self._released = True
        self.session.disconnect()
        logger.debug("Log tail of %s closed", self.path)

    def __enter__(self) -> "LogTail":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


SessionFactory = Callable[[ServerProfile], RemoteSession]


class DeploymentWorkflow:
    """Wires the store, prompter, reporter and sessions for each CLI command."""

    def __init__(
        self,
        config: AppConfig,
        store: Optional[ProfileStore] = None,
        prompter: Optional[UserInteractionHandler] = None,
        reporter: Optional[ProgressReporter] = None,
        session_factory: Optional[SessionFactory] = None,
        git: Optional[GitRepositoryManager] = None,
        working_dir: Union[str, Path, None] = None,
        port_checker: Callable[[str, int], bool] = check_port,
        local_runner_factory: Callable[[str], LocalSession] = LocalSession,
    ) -> None:
        self.config = config
        self.store = store or ProfileStore(config.paths.servers_path)
        self.prompter = prompter or CLIInteractionHandler()
        self.reporter = reporter or ConsoleReporter()
        self.session_factory = session_factory or self._ssh_session
        self.working_dir = Path(working_dir) if working_dir else Path.cwd()
        self.git = git or GitRepositoryManager(self.working_dir)
        self.port_checker = port_checker
        self.local_runner_factory = local_runner_factory
        self.probe = RemoteProbe()

    def _ssh_session(self, profile: ServerProfile) -> RemoteSession:
        return SSHSession.from_profile(
            profile,
            timeout=self.config.deployment.connect_timeout,
            upload_concurrency=self.config.deployment.upload_concurrency,
        )

    def orchestrator(self) -> DeploymentOrchestrator:
        return DeploymentOrchestrator(
            store=self.store,
            git=self.git,
            prompter=self.prompter,
            reporter=self.reporter,
            session_factory=self.session_factory,
            local_runner_factory=self.local_runner_factory,
            config=self.config.deployment,
            working_dir=str(self.working_dir),
        )

    def deploy(self, request: DeploymentRequest) -> DeploymentReport:
        return self.orchestrator().run(request)

    def wizard(self) -> ProfileWizard:
        return ProfileWizard(
            self.store,
            self.prompter,
            connection_tester=self.test_connection,
            default_local_path=self.config.deployment.default_local_path,
        )

    def status(self, environment: str) -> StatusReport:
        """Gather host facts, deploy info and service states for one environment."""
        profile = self.store.resolve(Environment.parse(environment))
        if not self.port_checker(profile.host, profile.port):
            raise SSHConnectionError(f"{profile.host}:{profile.port} is not reachable")

        session = self.session_factory(profile)
        session.connect()
        try:
            facts = self.probe.collect(session)
            info = self.probe.deploy_info(session, profile.deploy_path)
            services = self.probe.service_statuses(session)
        finally:
            session.disconnect()
        return StatusReport(profile=profile, facts=facts, deploy_info=info, services=services)

    def logs(self, environment: str, lines: int = 50, follow: bool = False) -> Union[LogSnapshot, LogTail]:
        """
        Read the first log file found on the host.

        Returns:
            LogSnapshot with the last ``lines`` lines, or a LogTail when
            ``follow`` is set; the LogTail owns the session from then on
        """
        profile = self.store.resolve(Environment.parse(environment))
        session = self.session_factory(profile)
        session.connect()
        handed_off = False
        try:
            path = self._find_log(session, profile)
            if path is None:
                raise DeployError(f"No log file found on {profile.host}")
            quoted = shlex.quote(path)
            if follow:
                tail = LogTail(session, session.stream(f"tail -f -n {int(lines)} {quoted}"), path)
                handed_off = True
                return tail
            return LogSnapshot(path=path, text=session.execute(f"tail -n {int(lines)} {quoted}"))
        finally:
            if not handed_off:
                session.disconnect()

    def test_connection(self, profile: ServerProfile) -> bool:
        """Connect, read basic host facts and disconnect; failures are reported, not raised."""
        session = self.session_factory(profile)
        try:
            session.connect()
            facts = self.probe.collect(session)
        except DeployError as exc:
            self.reporter.error(f"Connection test failed: {exc}")
            return False
        finally:
            session.disconnect()
        self.reporter.info(f"Connected to {facts.hostname} ({facts.os_short})")
        return True

    @staticmethod
    def _find_log(session: RemoteSession, profile: ServerProfile) -> Optional[str]:
        for template in LOG_CANDIDATES:
            path = posixpath.normpath(template.format(deploy=profile.deploy_path))
            if session.file_exists(path):
                return path
        return None
