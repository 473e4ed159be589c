"""Parsing utilities for gh CLI JSON output."""

import json
from pathlib import Path

from stacked.core.github.types import PR_STATES, PRState
from stacked.core.subprocess import run_subprocess_with_context


def execute_gh_command(cmd: list[str], cwd: Path, *, timeout: float | None = None) -> str:
    """Execute a gh CLI command and return stdout.

    Raises:
        RuntimeError: If the command fails, times out, or gh is not installed
    """
    result = run_subprocess_with_context(
        cmd,
        operation_context=f"execute gh command '{' '.join(cmd)}'",
        cwd=cwd,
        timeout=timeout,
    )
    return result.stdout


def parse_pr_state(stdout: str) -> PRState | None:
    """Parse ``gh pr view --json state`` output.

    Returns:
        The PR state, or None if the payload is invalid or the state is unknown
    """
    try:
        data = json.loads(stdout or "{}")
    except json.JSONDecodeError:
        return None

    if not isinstance(data, dict):
        return None

    state = data.get("state")
    for known in PR_STATES:
        if state == known:
            return known
    return None


def parse_pr_head_ref_oid(stdout: str, pr_number: int) -> str | None:
    """Parse ``gh pr view --json headRefOid`` output.

    Returns:
        The head commit SHA, or None if the payload carries no string SHA

    Raises:
        RuntimeError: If stdout is not valid JSON
    """
    try:
        data = json.loads(stdout or "{}")
    except json.JSONDecodeError as e:
        msg = f"Unable to parse PR #{pr_number} details: invalid JSON payload from gh"
        raise RuntimeError(msg) from e

    if not isinstance(data, dict):
        return None

    head_ref_oid = data.get("headRefOid")
    if isinstance(head_ref_oid, str) and head_ref_oid:
        return head_ref_oid
    return None
