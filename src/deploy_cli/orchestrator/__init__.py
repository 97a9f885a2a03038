"""Orchestrator module for the staged deployment pipeline.

- DeploymentOrchestrator: runs one DeploymentRequest stage by stage
- DeploymentRequest / DeploymentReport: input and outcome of a run
- Stage / StageResult / StageOutcome: per-stage state and tri-state result
"""

from .models import (
    EXECUTION_STAGES,
    DeploymentReport,
    DeploymentRequest,
    Stage,
    StageOutcome,
    StageResult,
)
from .orchestrator import DeploymentOrchestrator, backup_stamp

__all__ = [
    "EXECUTION_STAGES",
    "DeploymentReport",
    "DeploymentRequest",
    "Stage",
    "StageOutcome",
    "StageResult",
    "DeploymentOrchestrator",
    "backup_stamp",
]
