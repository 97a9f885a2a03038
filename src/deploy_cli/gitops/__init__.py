"""Git operations helpers."""

from ..errors import GitCommandError
from .manager import GitRepositoryManager, RepositoryState

__all__ = ["GitCommandError", "GitRepositoryManager", "RepositoryState"]
