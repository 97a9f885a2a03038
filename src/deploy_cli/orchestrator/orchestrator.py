"""Deployment orchestrator: runs the fixed stage pipeline for one request."""

from __future__ import annotations

import logging
import os
import posixpath
import shlex
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, TYPE_CHECKING

from ..config import DeploymentConfig
from ..errors import (
    BuildError,
    DeployError,
    DeploymentCancelled,
    GitCommandError,
    RepositoryStateError,
    TransferError,
    ValidationError,
    VerificationError,
)
from ..local import LocalSession
from ..profiles.models import Environment, ServerProfile, UploadMode
from ..ssh.session import FileMapping
from .models import (
    EXECUTION_STAGES,
    DeploymentReport,
    DeploymentRequest,
    Stage,
    StageResult,
)

if TYPE_CHECKING:
    from ..gitops import GitRepositoryManager
    from ..interaction import UserInteractionHandler
    from ..profiles.store import ProfileStore
    from ..reporting import ProgressReporter
    from ..ssh.session import RemoteSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[ServerProfile], "RemoteSession"]
LocalRunnerFactory = Callable[[str], LocalSession]


def backup_stamp(now: datetime) -> str:
    """``backup-2024-05-01T12-30-05-123Z`` for the given instant (UTC, milliseconds)."""
    utc = now.astimezone(timezone.utc)
    iso = utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"
    return "backup-" + iso.replace(":", "-").replace(".", "-")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentOrchestrator:
    """
    Runs one deployment request through the pipeline:

    ValidateEnvironment -> LoadProfile -> CheckRepositoryState -> Confirm,
    then either SimulateDeployment (dry run) or ExecuteDeployment
    (build, connect, backup, upload, install, restart, verify), then Complete.

    Fatal failures are reported, tagged with the stage description and
    re-raised. The remote session is released exactly once after a
    successful connect, whichever way the execute phase ends.
    """

    def __init__(
        self,
        store: "ProfileStore",
        git: "GitRepositoryManager",
        prompter: "UserInteractionHandler",
        reporter: "ProgressReporter",
        session_factory: SessionFactory,
        local_runner_factory: LocalRunnerFactory = LocalSession,
        config: Optional[DeploymentConfig] = None,
        working_dir: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.git = git
        self.prompter = prompter
        self.reporter = reporter
        self.session_factory = session_factory
        self.local_runner_factory = local_runner_factory
        self.config = config or DeploymentConfig()
        self.working_dir = Path(working_dir or os.getcwd())
        self._sleep = sleep
        self._clock = clock

    def run(self, request: DeploymentRequest) -> DeploymentReport:
        """
        Execute the pipeline for ``request``.

        Returns:
            DeploymentReport for a run that reached Complete (a failed
            verification is recorded as a warning, not a failure)

        Raises:
            DeployError: the first fatal stage failure, with ``stage`` set
        """
        report = DeploymentReport(request=request, started_at=self._clock())
        logger.info(
            "Deploying branch %s to %s (force=%s, dry_run=%s)",
            request.target_branch, request.environment, request.force, request.dry_run,
        )

        environment: Environment = self._stage(report, Stage.VALIDATE_ENVIRONMENT, self._validate)
        profile: ServerProfile = self._stage(
            report, Stage.LOAD_PROFILE, lambda r: self._load_profile(r, environment)
        )
        self._stage(report, Stage.CHECK_REPOSITORY, self._check_repository)
        self._stage(report, Stage.CONFIRM, lambda r: self._confirm(r, profile))

        if request.dry_run:
            self._simulate(report)
        else:
            self._execute(report, profile)

        report.finished_at = self._clock()
        report.last_commit = self.git.last_commit()
        report.record(Stage.COMPLETE, StageResult.succeeded())
        logger.info("Deployment to %s complete in %.1fs", request.environment, report.elapsed_seconds)
        self.reporter.summary(report)
        return report

    # ------------------------------------------------------------------
    # Stage plumbing
    # ------------------------------------------------------------------

    def _stage(self, report: DeploymentReport, stage: Stage, action: Callable[[DeploymentReport], object]):
        """Run one stage action; actions return a value or a StageResult."""
        self.reporter.stage_started(stage)
        logger.info("Stage: %s", stage.description)
        try:
            value = action(report)
        except DeployError as exc:
            self._fail(report, stage, exc)
            raise
        result = value if isinstance(value, StageResult) else StageResult.succeeded()
        report.record(stage, result)
        self.reporter.stage_finished(stage, result)
        return value

    def _fail(self, report: DeploymentReport, stage: Stage, exc: DeployError) -> None:
        if exc.stage is None:
            exc.stage = stage.description
        result = StageResult.fatal(exc)
        report.record(stage, result)
        logger.error("%s", exc.describe())
        self.reporter.stage_finished(stage, result)
        self.reporter.error(exc.describe())

    # ------------------------------------------------------------------
    # Preparation stages
    # ------------------------------------------------------------------

    def _validate(self, report: DeploymentReport) -> Environment:
        environment = Environment.parse(report.request.environment)
        if not self.git.is_repository():
            raise ValidationError(f"{self.working_dir} is not a git repository")
        return environment

    def _load_profile(self, report: DeploymentReport, environment: Environment) -> ServerProfile:
        profile = self.store.resolve(environment)
        report.profile = profile
        logger.info("Using server profile %s (%s)", profile.name, profile.host)
        return profile

    def _check_repository(self, report: DeploymentReport) -> StageResult:
        request = report.request
        target = request.target_branch
        try:
            state = self.git.state()
            if state.has_uncommitted_changes and not request.force:
                self.reporter.warning("Uncommitted changes detected in the working tree")
                if not self.prompter.confirm("Uncommitted changes detected. Continue deploying?", default=False):
                    raise DeploymentCancelled()

            if state.current_branch != target:
                self.reporter.info(f"Switching from {state.current_branch} to {target}")
                self.git.checkout(target)
                state = self.git.state()

            self.git.pull(target)
        except GitCommandError as exc:
            raise RepositoryStateError(str(exc)) from exc

        report.repository = state
        return StageResult.succeeded(f"branch {target}")

    def _confirm(self, report: DeploymentReport, profile: ServerProfile) -> StageResult:
        request = report.request
        if request.dry_run:
            return StageResult.skipped_stage("dry run")
        if request.force:
            return StageResult.skipped_stage("forced")

        self.reporter.info("Deployment details:")
        self.reporter.info(f"  Environment: {request.environment}")
        self.reporter.info(f"  Branch: {request.target_branch}")
        self.reporter.info(f"  Server: {profile.host}")
        self.reporter.info(f"  Deploy path: {profile.deploy_path}")
        if not self.prompter.confirm("Proceed with deployment?", default=False):
            raise DeploymentCancelled()
        return StageResult.succeeded()

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    def _simulate(self, report: DeploymentReport) -> None:
        self.reporter.warning("Dry run: nothing will be changed")
        for stage in EXECUTION_STAGES:
            self.reporter.stage_started(stage)
            self._sleep(self.config.simulate_step_delay)
            result = report.record(stage, StageResult.simulated_stage(stage))
            self.reporter.stage_finished(stage, result)

    # ------------------------------------------------------------------
    # Execute phase
    # ------------------------------------------------------------------

    def _execute(self, report: DeploymentReport, profile: ServerProfile) -> None:
        self._stage(report, Stage.BUILD_LOCAL, lambda r: self._build_local(profile))

        session = self.session_factory(profile)
        self._stage(report, Stage.CONNECT, lambda r: self._connect(session, profile))
        try:
            self._stage(report, Stage.BACKUP, lambda r: self._backup(r, session, profile))
            self._stage(report, Stage.UPLOAD, lambda r: self._upload(session, profile))
            self._stage(report, Stage.INSTALL, lambda r: self._install(session, profile))
            self._stage(report, Stage.RESTART, lambda r: self._restart(session, profile))
            self._verify(report, session, profile)
        finally:
            session.disconnect()
            logger.debug("Disconnected from %s", profile.host)

    def _build_local(self, profile: ServerProfile) -> StageResult:
        command = profile.build_command_local
        if not command:
            return StageResult.skipped_stage("no local build command")
        result = self.local_runner_factory(str(self.working_dir)).run(command)
        if not result.ok:
            raise BuildError(f"'{command}' exited with status {result.exit_status}")
        return StageResult.succeeded(command)

    def _connect(self, session: "RemoteSession", profile: ServerProfile) -> StageResult:
        session.connect()
        return StageResult.succeeded(f"{profile.username}@{profile.host}:{profile.port}")

    def _backup(self, report: DeploymentReport, session: "RemoteSession", profile: ServerProfile) -> StageResult:
        session.execute(f"mkdir -p {shlex.quote(profile.backup_path)}")
        if not session.directory_exists(profile.deploy_path):
            return StageResult.succeeded("nothing to back up (first deployment)")

        target = posixpath.join(profile.backup_path, backup_stamp(self._clock()))
        session.execute(f"cp -r {shlex.quote(profile.deploy_path)} {shlex.quote(target)}")
        report.backup_location = target
        return StageResult.succeeded(f"backed up to {target}")

    def _upload(self, session: "RemoteSession", profile: ServerProfile) -> StageResult:
        session.execute(f"mkdir -p {shlex.quote(profile.deploy_path)}")
        if profile.upload_mode is UploadMode.TREE:
            local_dir = self.working_dir / profile.local_path
            session.upload_tree(str(local_dir), profile.deploy_path)
            return StageResult.succeeded(f"{local_dir} -> {profile.deploy_path}")

        if not profile.files:
            raise TransferError(f"Profile {profile.name} uses file upload mode but lists no files")
        files = [
            FileMapping(local=str(self.working_dir / mapping.local), remote=mapping.target)
            for mapping in profile.files
        ]
        session.upload_files(files, profile.deploy_path)
        return StageResult.succeeded(f"{len(files)} file(s) uploaded")

    def _install(self, session: "RemoteSession", profile: ServerProfile) -> StageResult:
        commands = [c for c in (profile.install_command_remote, profile.build_command_remote) if c]
        if not commands:
            return StageResult.skipped_stage("no install or build command")
        for command in commands:
            session.execute(command, cwd=profile.deploy_path)
        return StageResult.succeeded(" && ".join(commands))

    def _restart(self, session: "RemoteSession", profile: ServerProfile) -> StageResult:
        command = profile.restart_command_remote
        if not command:
            return StageResult.skipped_stage("no restart command")
        session.execute(command)
        # Give the service time to come up before verifying
        self._sleep(self.config.settle_seconds)
        return StageResult.succeeded(command)

    def _verify(self, report: DeploymentReport, session: "RemoteSession", profile: ServerProfile) -> None:
        """The only stage whose failure is downgraded to a warning."""
        stage = Stage.VERIFY
        self.reporter.stage_started(stage)
        command = profile.verify_command_remote
        if not command:
            result = StageResult.skipped_stage("no verify command")
        else:
            try:
                output = session.execute(command)
                logger.debug("Verification output: %s", output)
                result = StageResult.succeeded(output.strip().splitlines()[-1] if output.strip() else "")
            except DeployError as exc:
                error = VerificationError(str(exc), stage=stage.description)
                logger.warning("Verification failed: %s", exc)
                self.reporter.warning("Verification failed, the deployment may still have completed")
                result = StageResult.warning(str(exc), error)
        report.record(stage, result)
        self.reporter.stage_finished(stage, result)
