"""Production implementation of GitHub operations."""

import logging
from pathlib import Path

from stacked.core.github.abc import GitHub
from stacked.core.github.parsing import (
    execute_gh_command,
    parse_pr_head_ref_oid,
    parse_pr_state,
)
from stacked.core.github.types import PRState
from stacked.core.subprocess import run_subprocess_with_context

logger = logging.getLogger(__name__)


class RealGitHub(GitHub):
    """Production implementation using gh CLI.

    All GitHub operations execute actual gh commands via subprocess.
    """

    def __init__(self, *, inspect_timeout: float, mutation_timeout: float) -> None:
        self._inspect_timeout = inspect_timeout
        self._mutation_timeout = mutation_timeout

    def get_pr_state(self, repo_root: Path, pr_number: int) -> PRState | None:
        """Get the live state of a PR.

        Note: Uses try/except as an acceptable error boundary for handling gh CLI
        availability and authentication. A PR whose state cannot be read is
        treated as not merged by the caller.
        """
        try:
            stdout = execute_gh_command(
                ["gh", "pr", "view", str(pr_number), "--json", "state"],
                repo_root,
                timeout=self._inspect_timeout,
            )
        except RuntimeError as e:
            logger.debug("Unable to read state of PR #%s: %s", pr_number, e)
            return None
        return parse_pr_state(stdout)

    def get_pr_head_sha(self, repo_root: Path, pr_number: int) -> str | None:
        """Get the head commit SHA of a PR via gh CLI."""
        result = run_subprocess_with_context(
            ["gh", "pr", "view", str(pr_number), "--json", "headRefOid"],
            operation_context=f"inspect PR #{pr_number}",
            cwd=repo_root,
            timeout=self._mutation_timeout,
        )
        return parse_pr_head_ref_oid(result.stdout, pr_number)

    def update_pr_base_branch(self, repo_root: Path, pr_number: int, new_base: str) -> None:
        """Retarget a PR via gh CLI."""
        run_subprocess_with_context(
            ["gh", "pr", "edit", str(pr_number), "--base", new_base],
            operation_context=f"retarget PR #{pr_number} to '{new_base}'",
            cwd=repo_root,
            timeout=self._mutation_timeout,
        )

    def merge_pr(self, repo_root: Path, pr_number: int, *, squash: bool = True) -> None:
        """Merge a pull request on GitHub via gh CLI."""
        cmd = ["gh", "pr", "merge", str(pr_number)]
        if squash:
            cmd.append("--squash")

        run_subprocess_with_context(
            cmd,
            operation_context=f"merge PR #{pr_number}",
            cwd=repo_root,
            timeout=self._mutation_timeout,
        )
