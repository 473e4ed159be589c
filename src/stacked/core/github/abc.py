"""Abstract base class for GitHub operations."""

from abc import ABC, abstractmethod
from pathlib import Path

from stacked.core.github.types import PRState


class GitHub(ABC):
    """Abstract interface for GitHub operations.

    All implementations (real and fake) must implement this interface.
    """

    @abstractmethod
    def get_pr_state(self, repo_root: Path, pr_number: int) -> PRState | None:
        """Get the live state of a PR.

        Args:
            repo_root: Repository root directory
            pr_number: PR number to query

        Returns:
            "OPEN", "MERGED" or "CLOSED", or None if the query fails
        """
        ...

    @abstractmethod
    def get_pr_head_sha(self, repo_root: Path, pr_number: int) -> str | None:
        """Get the commit SHA currently at the head of a PR.

        Args:
            repo_root: Repository root directory
            pr_number: PR number to query

        Returns:
            Head commit SHA, or None if GitHub reports none

        Raises:
            RuntimeError: If the PR cannot be inspected
        """
        ...

    @abstractmethod
    def update_pr_base_branch(self, repo_root: Path, pr_number: int, new_base: str) -> None:
        """Update base branch of a PR on GitHub.

        Args:
            repo_root: Repository root directory
            pr_number: PR number to update
            new_base: New base branch name

        Raises:
            RuntimeError: If the PR cannot be retargeted
        """
        ...

    @abstractmethod
    def merge_pr(self, repo_root: Path, pr_number: int, *, squash: bool = True) -> None:
        """Merge a pull request on GitHub.

        Args:
            repo_root: Repository root directory
            pr_number: PR number to merge
            squash: If True, use squash merge strategy (default: True)

        Raises:
            RuntimeError: If the merge fails
        """
        ...
