"""Error taxonomy shared by the deployment pipeline and the CLI."""

from __future__ import annotations

from typing import Optional


class DeployError(RuntimeError):
    """Base class for every fatal deploy-cli error.

    ``stage`` is filled in by the orchestrator with the description of the
    pipeline stage that failed, so the CLI can report where a run stopped.
    """

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage

    def describe(self) -> str:
        if self.stage:
            return f"{self.stage} failed: {self}"
        return str(self)


class ValidationError(DeployError):
    """Bad environment name or the working directory is not a repository."""


class ConfigError(DeployError):
    """Missing, ambiguous or malformed configuration."""


class RepositoryStateError(DeployError):
    """Local repository could not be brought to the requested state."""


class DeploymentCancelled(DeployError):
    """The operator declined a confirmation prompt."""

    def __init__(self, message: str = "deployment cancelled", **kwargs) -> None:
        super().__init__(message, **kwargs)


class BuildError(DeployError):
    """The local build command exited with a non-zero status."""


class SSHConnectionError(DeployError):
    """Raised when an SSH connection cannot be established."""


class RemoteExecutionError(DeployError):
    """A remote command exited with a non-zero status."""

    def __init__(self, command: str, exit_status: int, stderr: str) -> None:
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        detail = stderr or "no error output"
        super().__init__(f"Command '{command}' exited with status {exit_status}: {detail}")


class TransferError(DeployError):
    """File or directory upload failed."""


class VerificationError(DeployError):
    """The post-deploy verification command failed (reported as a warning)."""


class GitCommandError(DeployError):
    """Raised when a git command fails."""

    def __init__(self, command: list[str], exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Git command {' '.join(command)} failed with code {exit_code}: {stderr}")
