"""Git-based repository inspection and branch management."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..errors import GitCommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepositoryState:
    """Snapshot of the local working tree taken once per run."""

    current_branch: str
    has_uncommitted_changes: bool
    ahead_count: int = 0
    behind_count: int = 0


class GitRepositoryManager:
    """Wraps `git` CLI commands for the working tree being deployed.

    Every query re-reads live state; nothing is cached between calls.
    """

    def __init__(self, cwd: Union[str, Path, None] = None, git_binary: str = "git") -> None:
        self.cwd = Path(cwd) if cwd else Path.cwd()
        self.git_binary = git_binary

    def is_repository(self) -> bool:
        try:
            self._run(["rev-parse", "--git-dir"])
        except (GitCommandError, OSError):
            return False
        return True

    def current_branch(self) -> str:
        return self._run(["branch", "--show-current"]).strip()

    def state(self) -> RepositoryState:
        porcelain = self._run(["status", "--porcelain"])
        return RepositoryState(
            current_branch=self.current_branch(),
            has_uncommitted_changes=bool(porcelain.strip()),
            ahead_count=self._count("@{u}..HEAD"),
            behind_count=self._count("HEAD..@{u}"),
        )

    def checkout(self, branch: str) -> None:
        logger.info("Switching to branch %s", branch)
        self._run(["checkout", branch])

    def pull(self, branch: str, remote: str = "origin") -> str:
        logger.info("Pulling %s/%s", remote, branch)
        return self._run(["pull", remote, branch])

    def last_commit(self) -> Optional[str]:
        try:
            return self._run(["log", "-1", "--format=%h %s"]).strip() or None
        except GitCommandError:
            return None

    def _count(self, revision_range: str) -> int:
        # No upstream configured means nothing to compare against
        try:
            return int(self._run(["rev-list", "--count", revision_range]).strip() or 0)
        except (GitCommandError, ValueError):
            return 0

    def _run(self, args: list[str]) -> str:
        command = [self.git_binary] + args
        process = subprocess.run(
            command,
            cwd=str(self.cwd),
            capture_output=True,
            text=True,
            check=False,
        )
        if process.returncode != 0:
            raise GitCommandError(command, process.returncode, process.stderr.strip())
        return process.stdout
