"""Data models for the deployment pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from ..gitops import RepositoryState
    from ..profiles import ServerProfile


@dataclass(frozen=True)
class DeploymentRequest:
    """Everything that determines one deployment run."""

    environment: str
    target_branch: str = "main"
    force: bool = False
    dry_run: bool = False


class Stage(Enum):
    """Pipeline states, in execution order. Values are operator-facing descriptions."""
    VALIDATE_ENVIRONMENT = "Validate environment"
    LOAD_PROFILE = "Load server profile"
    CHECK_REPOSITORY = "Check repository state"
    CONFIRM = "Confirm deployment"
    BUILD_LOCAL = "Build project"
    CONNECT = "Connect to server"
    BACKUP = "Back up current version"
    UPLOAD = "Upload new version"
    INSTALL = "Install dependencies and build"
    RESTART = "Restart service"
    VERIFY = "Verify deployment"
    COMPLETE = "Complete"

    @property
    def description(self) -> str:
        return self.value


EXECUTION_STAGES: Tuple[Stage, ...] = (
    Stage.BUILD_LOCAL,
    Stage.CONNECT,
    Stage.BACKUP,
    Stage.UPLOAD,
    Stage.INSTALL,
    Stage.RESTART,
    Stage.VERIFY,
)


class StageOutcome(Enum):
    OK = "ok"
    WARN = "warn"      # recorded, pipeline continues
    FATAL = "fatal"    # pipeline aborts


@dataclass
class StageResult:
    """Outcome of one stage."""
    outcome: StageOutcome
    message: str = ""
    error: Optional[Exception] = None
    skipped: bool = False
    simulated: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome is not StageOutcome.FATAL

    @classmethod
    def succeeded(cls, message: str = "") -> "StageResult":
        return cls(outcome=StageOutcome.OK, message=message)

    @classmethod
    def skipped_stage(cls, reason: str) -> "StageResult":
        """An empty command is a skip, never a failure."""
        return cls(outcome=StageOutcome.OK, message=reason, skipped=True)

    @classmethod
    def simulated_stage(cls, stage: Stage) -> "StageResult":
        return cls(outcome=StageOutcome.OK, message=f"Simulated: {stage.description}", simulated=True)

    @classmethod
    def warning(cls, message: str, error: Optional[Exception] = None) -> "StageResult":
        return cls(outcome=StageOutcome.WARN, message=message, error=error)

    @classmethod
    def fatal(cls, error: Exception) -> "StageResult":
        return cls(outcome=StageOutcome.FATAL, message=str(error), error=error)


@dataclass
class DeploymentReport:
    """What happened during one run, stage by stage."""
    request: DeploymentRequest
    started_at: datetime
    profile: Optional["ServerProfile"] = None
    repository: Optional["RepositoryState"] = None
    stages: List[Tuple[Stage, StageResult]] = field(default_factory=list)
    finished_at: Optional[datetime] = None
    backup_location: Optional[str] = None
    last_commit: Optional[str] = None

    def record(self, stage: Stage, result: StageResult) -> StageResult:
        self.stages.append((stage, result))
        return result

    def result_for(self, stage: Stage) -> Optional[StageResult]:
        for recorded, result in self.stages:
            if recorded is stage:
                return result
        return None

    @property
    def stage_names(self) -> List[Stage]:
        return [stage for stage, _ in self.stages]

    @property
    def succeeded(self) -> bool:
        return all(result.ok for _, result in self.stages)

    @property
    def warnings(self) -> List[StageResult]:
        return [result for _, result in self.stages if result.outcome is StageOutcome.WARN]

    @property
    def verified(self) -> bool:
        verify = self.result_for(Stage.VERIFY)
        return verify is not None and verify.outcome is StageOutcome.OK and not verify.simulated

    @property
    def elapsed_seconds(self) -> float:
        if not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()
