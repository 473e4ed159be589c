"""Fake GitHub operations for testing.

FakeGitHub is an in-memory implementation that accepts pre-configured state
in its constructor. Construct instances directly with keyword arguments.
"""

from pathlib import Path

from stacked.core.github.abc import GitHub
from stacked.core.github.types import PRState


class FakeGitHub(GitHub):
    """In-memory fake implementation of GitHub operations.

    This class has NO public setup methods. All state is provided via constructor
    using keyword arguments with sensible defaults (empty dicts).

    A merged PR reports "MERGED" from get_pr_state() afterwards, so a second
    merge-down over the same stack sees the merge.
    """

    def __init__(
        self,
        *,
        pr_states: dict[int, PRState] | None = None,
        pr_head_shas: dict[int, str] | None = None,
        head_lookup_failures: dict[int, int] | None = None,
        retarget_failures: set[int] | None = None,
        merge_failures: set[int] | None = None,
    ) -> None:
        """Create FakeGitHub with pre-configured state.

        Args:
            pr_states: Mapping of pr_number -> state (missing PRs return None)
            pr_head_shas: Mapping of pr_number -> head commit SHA
            head_lookup_failures: Mapping of pr_number -> number of head lookups
                that fail before one succeeds
            retarget_failures: PR numbers whose base branch update fails
            merge_failures: PR numbers whose merge fails
        """
        self._pr_states = dict(pr_states or {})
        self._pr_head_shas = pr_head_shas or {}
        self._head_lookup_failures = dict(head_lookup_failures or {})
        self._retarget_failures = retarget_failures or set()
        self._merge_failures = merge_failures or set()

        self._head_lookups: list[int] = []
        self._updated_pr_bases: list[tuple[int, str]] = []
        self._merged_prs: list[int] = []

    @property
    def head_lookups(self) -> list[int]:
        """PR numbers passed to get_pr_head_sha(), including failed attempts."""
        return self._head_lookups

    @property
    def updated_pr_bases(self) -> list[tuple[int, str]]:
        """List of (pr_number, new_base) pairs that were retargeted."""
        return self._updated_pr_bases

    @property
    def merged_prs(self) -> list[int]:
        """List of PR numbers that were merged."""
        return self._merged_prs

    def get_pr_state(self, repo_root: Path, pr_number: int) -> PRState | None:
        return self._pr_states.get(pr_number)

    def get_pr_head_sha(self, repo_root: Path, pr_number: int) -> str | None:
        self._head_lookups.append(pr_number)
        remaining_failures = self._head_lookup_failures.get(pr_number, 0)
        if remaining_failures > 0:
            self._head_lookup_failures[pr_number] = remaining_failures - 1
            msg = f"Failed to inspect PR #{pr_number}\nstderr: HTTP 502: Bad Gateway"
            raise RuntimeError(msg)
        return self._pr_head_shas.get(pr_number)

    def update_pr_base_branch(self, repo_root: Path, pr_number: int, new_base: str) -> None:
        if pr_number in self._retarget_failures:
            msg = f"Failed to retarget PR #{pr_number} to '{new_base}'"
            raise RuntimeError(msg)
        self._updated_pr_bases.append((pr_number, new_base))

    def merge_pr(self, repo_root: Path, pr_number: int, *, squash: bool = True) -> None:
        if pr_number in self._merge_failures:
            msg = f"Failed to merge PR #{pr_number}\nstderr: Pull request is not mergeable"
            raise RuntimeError(msg)
        self._merged_prs.append(pr_number)
        self._pr_states[pr_number] = "MERGED"
