"""Fake Git operations for testing.

FakeGit is an in-memory implementation that accepts pre-configured state
in its constructor. Construct instances directly with keyword arguments.
"""

from pathlib import Path
from typing import NamedTuple

from stacked.core.git.abc import Git


class RebaseCall(NamedTuple):
    """A recorded rebase invocation.

    ``upstream`` and ``branch`` are None for a plain ``git rebase <onto>``.
    """

    cwd: Path
    onto: str
    upstream: str | None
    branch: str | None


class FakeGit(Git):
    """In-memory fake implementation of git operations.

    This class has NO public setup methods. All state is provided via constructor
    using keyword arguments with sensible defaults (empty collections).

    Refs are modelled as a flat mapping of ref name (``main``, ``origin/main``,
    ``feature/stage-1``) to commit SHA. Behind counts are configured per
    ``(branch, base_ref)`` pair; a successful rebase resets the pair to zero.
    """

    def __init__(
        self,
        *,
        default_branch: str | None = "main",
        refs: dict[str, str] | None = None,
        behind_counts: dict[tuple[str, str], int] | None = None,
        worktree_branches: dict[Path, str] | None = None,
        ancestry: set[tuple[str, str]] | None = None,
        merge_bases: dict[tuple[str, str], str] | None = None,
        existing_paths: set[Path] | None = None,
        dirty_paths: set[Path] | None = None,
        status_failures: set[Path] | None = None,
        fetch_failures: set[str] | None = None,
        rebase_failures: set[Path] | None = None,
        push_failures: set[str] | None = None,
        remove_worktree_failures: set[Path] | None = None,
        delete_branch_failures: set[str] | None = None,
    ) -> None:
        """Create FakeGit with pre-configured state.

        Args:
            default_branch: Trunk branch returned by detect_default_branch (None fails)
            refs: Mapping of ref name -> commit SHA
            behind_counts: Mapping of (branch, base_ref) -> commits behind
            worktree_branches: Mapping of worktree path -> checked-out branch
            ancestry: (ancestor, descendant) ref pairs for which is_ancestor() holds
            merge_bases: Mapping of (ref_a, ref_b) -> merge base SHA, looked up in
                either order
            existing_paths: Paths that exist on the fake filesystem
            dirty_paths: Worktrees with uncommitted changes
            status_failures: Worktrees whose status cannot be inspected
            fetch_failures: Branch names whose fetch fails
            rebase_failures: Worktree paths where any rebase fails
            push_failures: Branch names whose push fails
            remove_worktree_failures: Worktree paths whose removal fails
            delete_branch_failures: Branch names whose deletion fails
        """
        self._default_branch = default_branch
        self._refs = dict(refs or {})
        self._behind_counts = dict(behind_counts or {})
        self._worktree_branches = dict(worktree_branches or {})
        self._ancestry = ancestry or set()
        self._merge_bases = merge_bases or {}
        self._existing_paths = set(existing_paths or set())
        self._dirty_paths = dirty_paths or set()
        self._status_failures = status_failures or set()
        self._fetch_failures = fetch_failures or set()
        self._rebase_failures = rebase_failures or set()
        self._push_failures = push_failures or set()
        self._remove_worktree_failures = remove_worktree_failures or set()
        self._delete_branch_failures = delete_branch_failures or set()

        self._operation_log: list[str] = []
        self._fetched_branches: list[tuple[str, str]] = []
        self._fetched_remotes: list[tuple[str, bool]] = []
        self._rebases: list[RebaseCall] = []
        self._aborted_rebases: list[Path] = []
        self._pushed_branches: list[tuple[str, str]] = []
        self._removed_worktrees: list[Path] = []
        self._deleted_branches: list[str] = []

    @property
    def operation_log(self) -> list[str]:
        """Ordered log of every mutating or fetching call, for ordering assertions."""
        return self._operation_log

    @property
    def fetched_branches(self) -> list[tuple[str, str]]:
        """List of (remote, branch) pairs passed to fetch_branch()."""
        return self._fetched_branches

    @property
    def fetched_remotes(self) -> list[tuple[str, bool]]:
        """List of (remote, prune) pairs passed to fetch_remote()."""
        return self._fetched_remotes

    @property
    def rebases(self) -> list[RebaseCall]:
        """Successful and failed rebase attempts, in order."""
        return self._rebases

    @property
    def aborted_rebases(self) -> list[Path]:
        """Worktree paths where abort_rebase() ran."""
        return self._aborted_rebases

    @property
    def pushed_branches(self) -> list[tuple[str, str]]:
        """List of (remote, branch) pairs that were force-pushed."""
        return self._pushed_branches

    @property
    def removed_worktrees(self) -> list[Path]:
        """Worktree paths that were removed."""
        return self._removed_worktrees

    @property
    def deleted_branches(self) -> list[str]:
        """Local branches that were deleted."""
        return self._deleted_branches

    def detect_default_branch(
        self, repo_root: Path, *, remote: str, configured: str | None = None
    ) -> str:
        """Return the configured trunk if it exists, else the pre-configured default."""
        if configured is not None:
            if configured in self._refs or f"{remote}/{configured}" in self._refs:
                return configured
            msg = f"Configured trunk branch '{configured}' does not exist in repository."
            raise RuntimeError(msg)

        if self._default_branch is None:
            msg = "Unable to resolve the repository default base branch."
            raise RuntimeError(msg)
        return self._default_branch

    def ref_exists(self, repo_root: Path, ref: str) -> bool:
        return self.resolve_commit_sha(repo_root, ref) is not None

    def resolve_commit_sha(self, repo_root: Path, ref: str) -> str | None:
        """Resolve from configured refs; a known SHA resolves to itself."""
        if ref in self._refs:
            return self._refs[ref]
        if ref in self._refs.values():
            return ref
        return None

    def local_branch_exists(self, repo_root: Path, branch: str) -> bool:
        return branch in self._refs

    def has_uncommitted_changes(self, cwd: Path) -> bool:
        if cwd in self._status_failures:
            msg = f"Failed to inspect repository status\nstderr: fatal: not a git repository: {cwd}"
            raise RuntimeError(msg)
        return cwd in self._dirty_paths

    def count_commits_behind(self, repo_root: Path, branch: str, base_ref: str) -> int:
        """Return the configured count; unknown refs fail like git does."""
        for ref in (branch, base_ref):
            if ref not in self._refs:
                msg = (
                    f"Failed to compare {branch} against {base_ref}\n"
                    f"stderr: fatal: ambiguous argument '{branch}..{base_ref}': "
                    "unknown revision or path not in the working tree."
                )
                raise RuntimeError(msg)
        return self._behind_counts.get((branch, base_ref), 0)

    def is_ancestor(self, repo_root: Path, ancestor: str, descendant: str) -> bool:
        return (ancestor, descendant) in self._ancestry

    def merge_base(self, repo_root: Path, ref_a: str, ref_b: str) -> str | None:
        if (ref_a, ref_b) in self._merge_bases:
            return self._merge_bases[(ref_a, ref_b)]
        return self._merge_bases.get((ref_b, ref_a))

    def fetch_branch(self, repo_root: Path, remote: str, branch: str) -> None:
        self._operation_log.append(f"fetch {remote} {branch}")
        if branch in self._fetch_failures:
            msg = f"Failed to fetch branch '{branch}' from remote '{remote}'"
            raise RuntimeError(msg)
        self._fetched_branches.append((remote, branch))

    def fetch_remote(self, repo_root: Path, remote: str, *, prune: bool) -> None:
        self._operation_log.append(f"fetch {remote}")
        if remote in self._fetch_failures:
            msg = f"Failed to fetch from remote '{remote}'"
            raise RuntimeError(msg)
        self._fetched_remotes.append((remote, prune))

    def rebase(self, cwd: Path, onto: str) -> None:
        self._record_rebase(RebaseCall(cwd=cwd, onto=onto, upstream=None, branch=None))

    def rebase_onto(self, cwd: Path, new_base: str, upstream: str, branch: str) -> None:
        self._record_rebase(RebaseCall(cwd=cwd, onto=new_base, upstream=upstream, branch=branch))

    def _record_rebase(self, call: RebaseCall) -> None:
        self._operation_log.append(f"rebase {call.cwd} {call.onto}")
        self._rebases.append(call)
        if call.cwd in self._rebase_failures:
            msg = f"Failed to rebase onto '{call.onto}'\nstderr: CONFLICT (content): Merge conflict"
            raise RuntimeError(msg)

        branch = call.branch or self._worktree_branches.get(call.cwd)
        if branch is not None:
            self._behind_counts[(branch, call.onto)] = 0

    def abort_rebase(self, cwd: Path) -> None:
        self._operation_log.append(f"rebase --abort {cwd}")
        self._aborted_rebases.append(cwd)

    def push_force_with_lease(self, cwd: Path, remote: str, branch: str) -> None:
        self._operation_log.append(f"push {remote} {branch}")
        if branch in self._push_failures:
            msg = f"Failed to push '{branch}' to '{remote}'\nstderr: stale info"
            raise RuntimeError(msg)
        self._pushed_branches.append((remote, branch))

    def remove_worktree(self, repo_root: Path, path: Path, *, force: bool) -> None:
        self._operation_log.append(f"worktree remove {path}")
        if path in self._remove_worktree_failures:
            msg = f"Failed to remove worktree at {path}"
            raise RuntimeError(msg)
        self._removed_worktrees.append(path)
        self._existing_paths.discard(path)

    def delete_branch(self, cwd: Path, branch_name: str, *, force: bool) -> None:
        self._operation_log.append(f"branch -D {branch_name}")
        if branch_name in self._delete_branch_failures:
            msg = f"Failed to delete branch '{branch_name}'"
            raise RuntimeError(msg)
        self._deleted_branches.append(branch_name)
        self._refs.pop(branch_name, None)

    def path_exists(self, path: Path) -> bool:
        return path in self._existing_paths
