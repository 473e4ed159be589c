"""High-level git operations interface.

This module provides a clean abstraction over git subprocess calls, making the
stack engines testable without a repository on disk.

Architecture:
- Git: Abstract base class defining the interface
- RealGit: Production implementation using subprocess
- FakeGit: In-memory implementation for tests
"""

from abc import ABC, abstractmethod
from pathlib import Path


class Git(ABC):
    """Abstract interface for git operations.

    All implementations (real and fake) must implement this interface.
    This interface contains ONLY runtime operations - no test setup methods.

    Mutating methods raise RuntimeError when the underlying command fails.
    """

    @abstractmethod
    def detect_default_branch(
        self, repo_root: Path, *, remote: str, configured: str | None = None
    ) -> str:
        """Detect the repository's default trunk branch.

        Prefers the remote-tracked default (``refs/remotes/<remote>/HEAD``), then
        the HEAD branch reported by ``git remote show``, then ``main`` and
        ``master``.

        Args:
            repo_root: Path to the repository root
            remote: Remote name (e.g., "origin")
            configured: Optional configured trunk branch name. If provided, it must
                        exist locally or on the remote and detection is skipped.

        Returns:
            The trunk branch name (without remote prefix)

        Raises:
            RuntimeError: If the configured branch is missing or no trunk exists
        """
        ...

    @abstractmethod
    def ref_exists(self, repo_root: Path, ref: str) -> bool:
        """Check whether ``ref`` resolves to a commit."""
        ...

    @abstractmethod
    def resolve_commit_sha(self, repo_root: Path, ref: str) -> str | None:
        """Resolve ``ref`` to a full commit SHA.

        Returns:
            Commit SHA, or None if the ref does not resolve to a commit
        """
        ...

    @abstractmethod
    def local_branch_exists(self, repo_root: Path, branch: str) -> bool:
        """Check whether ``refs/heads/<branch>`` exists."""
        ...

    @abstractmethod
    def has_uncommitted_changes(self, cwd: Path) -> bool:
        """Check if a worktree has uncommitted changes.

        Uses git status --porcelain; any output (staged, modified, or untracked)
        counts as a change.

        Raises:
            RuntimeError: If the status cannot be inspected
        """
        ...

    @abstractmethod
    def count_commits_behind(self, repo_root: Path, branch: str, base_ref: str) -> int:
        """Count commits reachable from ``base_ref`` but not from ``branch``.

        The count is directional: commits that exist only on ``branch`` are
        never included.

        Raises:
            RuntimeError: If either ref is missing or the output is not a count
        """
        ...

    @abstractmethod
    def is_ancestor(self, repo_root: Path, ancestor: str, descendant: str) -> bool:
        """Check whether ``ancestor`` is reachable from ``descendant``.

        Returns False when either ref does not resolve.
        """
        ...

    @abstractmethod
    def merge_base(self, repo_root: Path, ref_a: str, ref_b: str) -> str | None:
        """Return the best common ancestor of two refs, or None if there is none."""
        ...

    @abstractmethod
    def fetch_branch(self, repo_root: Path, remote: str, branch: str) -> None:
        """Fetch a specific branch from a remote."""
        ...

    @abstractmethod
    def fetch_remote(self, repo_root: Path, remote: str, *, prune: bool) -> None:
        """Fetch every branch from a remote, optionally pruning deleted refs."""
        ...

    @abstractmethod
    def rebase(self, cwd: Path, onto: str) -> None:
        """Rebase the branch checked out in ``cwd`` onto ``onto``."""
        ...

    @abstractmethod
    def rebase_onto(self, cwd: Path, new_base: str, upstream: str, branch: str) -> None:
        """Replay the commits of ``branch`` that are not in ``upstream`` onto ``new_base``.

        Equivalent to ``git rebase --onto <new_base> <upstream> <branch>``.
        """
        ...

    @abstractmethod
    def abort_rebase(self, cwd: Path) -> None:
        """Abort an in-progress rebase in ``cwd``."""
        ...

    @abstractmethod
    def push_force_with_lease(self, cwd: Path, remote: str, branch: str) -> None:
        """Force-push ``branch`` to ``remote``, refusing to clobber unseen updates."""
        ...

    @abstractmethod
    def remove_worktree(self, repo_root: Path, path: Path, *, force: bool) -> None:
        """Remove a worktree.

        Args:
            repo_root: Path to the git repository root
            path: Path to the worktree to remove
            force: True to force removal even if worktree has uncommitted changes
        """
        ...

    @abstractmethod
    def delete_branch(self, cwd: Path, branch_name: str, *, force: bool) -> None:
        """Delete a local branch.

        Args:
            cwd: Working directory to run command in
            branch_name: Name of the branch to delete
            force: Use -D (force delete) instead of -d
        """
        ...

    @abstractmethod
    def path_exists(self, path: Path) -> bool:
        """Check if a path exists on the filesystem.

        In production (RealGit), this delegates to Path.exists(). In tests
        (FakeGit), this checks an in-memory set of existing paths.
        """
        ...
