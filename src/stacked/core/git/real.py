"""Production Git implementation using subprocess.

This module provides the real Git implementation that executes actual git
commands via subprocess. Read-only inspection commands use the short inspect
timeout; anything that talks to a remote or rewrites history uses the longer
mutation timeout.
"""

import re
from pathlib import Path

from stacked.core.git.abc import Git
from stacked.core.subprocess import run_subprocess_with_context

DEFAULT_INSPECT_TIMEOUT = 8.0
DEFAULT_MUTATION_TIMEOUT = 120.0

_REMOTE_HEAD_PATTERN = re.compile(r"HEAD branch:\s*(\S+)")


class RealGit(Git):
    """Production implementation using subprocess.

    All git operations execute actual git commands via subprocess.
    """

    def __init__(
        self,
        *,
        inspect_timeout: float = DEFAULT_INSPECT_TIMEOUT,
        mutation_timeout: float = DEFAULT_MUTATION_TIMEOUT,
    ) -> None:
        self._inspect_timeout = inspect_timeout
        self._mutation_timeout = mutation_timeout

    def _branch_ref_exists(self, repo_root: Path, remote: str, branch: str) -> bool:
        for ref in (f"refs/heads/{branch}", f"refs/remotes/{remote}/{branch}"):
            result = run_subprocess_with_context(
                ["git", "show-ref", "--verify", "--quiet", ref],
                operation_context=f"check ref '{ref}'",
                cwd=repo_root,
                timeout=self._inspect_timeout,
                check=False,
            )
            if result.returncode == 0:
                return True
        return False

    def detect_default_branch(
        self, repo_root: Path, *, remote: str, configured: str | None = None
    ) -> str:
        """Detect the default trunk branch."""
        if configured is not None:
            if self._branch_ref_exists(repo_root, remote, configured):
                return configured
            msg = (
                f"Configured trunk branch '{configured}' does not exist in repository.\n"
                "Update trunk_branch in .stacked/config.toml or create the branch."
            )
            raise RuntimeError(msg)

        # Remote HEAD first
        result = run_subprocess_with_context(
            ["git", "symbolic-ref", "--quiet", "--short", f"refs/remotes/{remote}/HEAD"],
            operation_context=f"read {remote}/HEAD",
            cwd=repo_root,
            timeout=self._inspect_timeout,
            check=False,
        )
        prefix = f"{remote}/"
        remote_head = result.stdout.strip()
        if result.returncode == 0 and remote_head.startswith(prefix):
            branch = remote_head[len(prefix) :]
            if self._branch_ref_exists(repo_root, remote, branch):
                return branch

        result = run_subprocess_with_context(
            ["git", "remote", "show", remote],
            operation_context=f"show remote '{remote}'",
            cwd=repo_root,
            timeout=self._inspect_timeout,
            check=False,
        )
        if result.returncode == 0:
            match = _REMOTE_HEAD_PATTERN.search(result.stdout)
            if match is not None and self._branch_ref_exists(repo_root, remote, match.group(1)):
                return match.group(1)

        for candidate in ("main", "master"):
            if self._branch_ref_exists(repo_root, remote, candidate):
                return candidate

        msg = (
            "Unable to resolve the repository default base branch. "
            f"Configure {remote}/HEAD or create main/master."
        )
        raise RuntimeError(msg)

    def ref_exists(self, repo_root: Path, ref: str) -> bool:
        """Check whether ref resolves to a commit."""
        return self.resolve_commit_sha(repo_root, ref) is not None

    def resolve_commit_sha(self, repo_root: Path, ref: str) -> str | None:
        """Resolve ref to a full commit SHA."""
        if not ref.strip():
            return None

        result = run_subprocess_with_context(
            ["git", "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"],
            operation_context=f"resolve '{ref}'",
            cwd=repo_root,
            timeout=self._inspect_timeout,
            check=False,
        )
        sha = result.stdout.strip()
        if result.returncode != 0 or not sha:
            return None
        return sha

    def local_branch_exists(self, repo_root: Path, branch: str) -> bool:
        """Check whether refs/heads/<branch> exists."""
        result = run_subprocess_with_context(
            ["git", "show-ref", "--verify", "--quiet", f"refs/heads/{branch}"],
            operation_context=f"check local branch '{branch}'",
            cwd=repo_root,
            timeout=self._inspect_timeout,
            check=False,
        )
        return result.returncode == 0

    def has_uncommitted_changes(self, cwd: Path) -> bool:
        """Check if a worktree has uncommitted changes."""
        result = run_subprocess_with_context(
            ["git", "status", "--porcelain"],
            operation_context="inspect repository status",
            cwd=cwd,
            timeout=self._inspect_timeout,
        )
        return bool(result.stdout.strip())

    def count_commits_behind(self, repo_root: Path, branch: str, base_ref: str) -> int:
        """Count commits on base_ref that are not on branch."""
        result = run_subprocess_with_context(
            ["git", "rev-list", "--count", f"{branch}..{base_ref}"],
            operation_context=f"compare {branch} against {base_ref}",
            cwd=repo_root,
            timeout=self._inspect_timeout,
        )
        raw = result.stdout.strip()
        if not raw.isdigit():
            msg = f"Unable to parse behind count for {branch}: {raw!r}"
            raise RuntimeError(msg)
        return int(raw)

    def is_ancestor(self, repo_root: Path, ancestor: str, descendant: str) -> bool:
        """Check ancestry with ``git merge-base --is-ancestor``."""
        if not ancestor.strip() or not descendant.strip():
            return False

        result = run_subprocess_with_context(
            ["git", "merge-base", "--is-ancestor", ancestor, descendant],
            operation_context=f"check whether '{ancestor}' is an ancestor of '{descendant}'",
            cwd=repo_root,
            timeout=self._inspect_timeout,
            check=False,
        )
        return result.returncode == 0

    def merge_base(self, repo_root: Path, ref_a: str, ref_b: str) -> str | None:
        """Find the merge base of two refs."""
        if not ref_a.strip() or not ref_b.strip():
            return None

        result = run_subprocess_with_context(
            ["git", "merge-base", ref_a, ref_b],
            operation_context=f"find merge base of '{ref_a}' and '{ref_b}'",
            cwd=repo_root,
            timeout=self._inspect_timeout,
            check=False,
        )
        sha = result.stdout.strip()
        if result.returncode != 0 or not sha:
            return None
        return sha

    def fetch_branch(self, repo_root: Path, remote: str, branch: str) -> None:
        """Fetch a specific branch from a remote."""
        run_subprocess_with_context(
            ["git", "fetch", remote, branch],
            operation_context=f"fetch branch '{branch}' from remote '{remote}'",
            cwd=repo_root,
            timeout=self._mutation_timeout,
        )

    def fetch_remote(self, repo_root: Path, remote: str, *, prune: bool) -> None:
        """Fetch every branch from a remote."""
        cmd = ["git", "fetch"]
        if prune:
            cmd.append("--prune")
        cmd.append(remote)
        run_subprocess_with_context(
            cmd,
            operation_context=f"fetch from remote '{remote}'",
            cwd=repo_root,
            timeout=self._mutation_timeout,
        )

    def rebase(self, cwd: Path, onto: str) -> None:
        """Rebase the checked-out branch onto a ref."""
        run_subprocess_with_context(
            ["git", "rebase", onto],
            operation_context=f"rebase onto '{onto}'",
            cwd=cwd,
            timeout=self._mutation_timeout,
        )

    def rebase_onto(self, cwd: Path, new_base: str, upstream: str, branch: str) -> None:
        """Replay branch's own commits onto new_base."""
        run_subprocess_with_context(
            ["git", "rebase", "--onto", new_base, upstream, branch],
            operation_context=f"rebase '{branch}' onto '{new_base}' from '{upstream}'",
            cwd=cwd,
            timeout=self._mutation_timeout,
        )

    def abort_rebase(self, cwd: Path) -> None:
        """Abort an in-progress rebase."""
        run_subprocess_with_context(
            ["git", "rebase", "--abort"],
            operation_context="abort rebase",
            cwd=cwd,
            timeout=self._mutation_timeout,
        )

    def push_force_with_lease(self, cwd: Path, remote: str, branch: str) -> None:
        """Force-push a branch with lease."""
        run_subprocess_with_context(
            ["git", "push", "--force-with-lease", remote, branch],
            operation_context=f"push '{branch}' to '{remote}'",
            cwd=cwd,
            timeout=self._mutation_timeout,
        )

    def remove_worktree(self, repo_root: Path, path: Path, *, force: bool) -> None:
        """Remove a worktree."""
        cmd = ["git", "worktree", "remove"]
        if force:
            cmd.append("--force")
        cmd.append(str(path))
        run_subprocess_with_context(
            cmd,
            operation_context=f"remove worktree at {path}",
            cwd=repo_root,
            timeout=self._mutation_timeout,
        )

    def delete_branch(self, cwd: Path, branch_name: str, *, force: bool) -> None:
        """Delete a local branch."""
        flag = "-D" if force else "-d"
        run_subprocess_with_context(
            ["git", "branch", flag, branch_name],
            operation_context=f"delete branch '{branch_name}'",
            cwd=cwd,
            timeout=self._mutation_timeout,
        )

    def path_exists(self, path: Path) -> bool:
        """Check if a path exists on the filesystem."""
        return path.exists()
