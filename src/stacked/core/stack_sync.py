"""Synchronization engine: measure and eliminate drift along a stack.

A stage drifts when its base ref has commits the stage branch does not. The
drift report is read-only; sync_stack rebases every drifted stage onto its base
and force-pushes it, walking the chain in order so each stage picks up the tip
its predecessor was just rebased to.

When a stage's parent has been merged or replaced since the stage was branched,
the stage is transplanted with ``rebase --onto`` so only its own commits move.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from stacked.core.context import StackedContext
from stacked.core.errors import (
    CommandFailedError,
    InvalidStackStateError,
    StackNotFoundError,
    command_failure_detail,
)
from stacked.core.stack_chain import (
    PREVIOUS_STAGE_UNSTARTED_REASON,
    STAGE_UNSTARTED_REASON,
    StageChainContext,
    resolve_stage_chain,
    resolve_trunk_ref,
)
from stacked.core.stack_store.types import ImplementationSession, Stack
from stacked.core.worktree_paths import resolve_worktree_absolute_path

logger = logging.getLogger(__name__)

ALREADY_IN_SYNC_REASON = "Already in sync."
MISSING_COMPARISON_REASON = (
    "Stage sync status is unavailable because a comparison branch no longer exists."
)

_MISSING_REF_MARKERS = (
    "unknown revision",
    "ambiguous argument",
    "bad revision",
    "not a valid object name",
)


@dataclass(frozen=True)
class StageSyncMetadata:
    """Drift of one stage against its base ref."""

    is_out_of_sync: bool
    behind_by: int
    branch_name: str | None
    base_ref: str | None
    reason_if_unavailable: str | None = None


@dataclass(frozen=True)
class SyncStackStageResult:
    stage_id: str
    stage_title: str
    branch_name: str | None
    base_ref: str | None
    status: Literal["rebased", "skipped"]
    reason: str | None = None


@dataclass(frozen=True)
class SyncStackResult:
    stack_id: str
    total_stages: int
    rebased_stages: int
    skipped_stages: int
    stages: tuple[SyncStackStageResult, ...]


def is_missing_ref_failure(message: str) -> bool:
    normalized = message.lower()
    return any(marker in normalized for marker in _MISSING_REF_MARKERS)


def _unavailable(context: StageChainContext, reason: str) -> StageSyncMetadata:
    return StageSyncMetadata(
        is_out_of_sync=False,
        behind_by=0,
        branch_name=context.branch_name,
        base_ref=context.base_ref,
        reason_if_unavailable=reason,
    )


def _count_behind(ctx: StackedContext, branch_name: str, base_ref: str) -> int:
    try:
        return ctx.git.count_commits_behind(ctx.repo_root, branch_name, base_ref)
    except RuntimeError as e:
        raise CommandFailedError(
            f"Unable to compare {branch_name} against {base_ref}", command_failure_detail(e)
        ) from e


def _resolve_contexts(
    ctx: StackedContext, stack: Stack, sessions: list[ImplementationSession]
) -> list[StageChainContext]:
    _, trunk_ref = resolve_trunk_ref(
        ctx.git,
        ctx.repo_root,
        remote=ctx.config.remote,
        configured_trunk=ctx.config.trunk_branch,
    )
    return resolve_stage_chain(stack, sessions, trunk_ref)


def get_stage_sync_by_id(ctx: StackedContext, stack: Stack) -> dict[str, StageSyncMetadata]:
    """Report how far each stage has drifted from its base ref.

    Performs no git mutation. A comparison against a ref that no longer exists
    is reported as unavailable rather than raised.

    Raises:
        InvalidStackStateError: If no trunk branch can be resolved
        CommandFailedError: If a comparison fails for any other reason
    """
    sessions = ctx.store.get_implementation_sessions_by_stack_id(stack.id)
    report: dict[str, StageSyncMetadata] = {}
    for context in _resolve_contexts(ctx, stack, sessions):
        if not context.is_available or context.branch_name is None or context.base_ref is None:
            report[context.stage_id] = _unavailable(
                context, context.reason_if_unavailable or "Stage sync status is unavailable."
            )
            continue

        try:
            behind_by = _count_behind(ctx, context.branch_name, context.base_ref)
        except CommandFailedError as e:
            if is_missing_ref_failure(e.message):
                report[context.stage_id] = _unavailable(context, MISSING_COMPARISON_REASON)
                continue
            raise

        report[context.stage_id] = StageSyncMetadata(
            is_out_of_sync=behind_by > 0,
            behind_by=behind_by,
            branch_name=context.branch_name,
            base_ref=context.base_ref,
        )
    return report


def sync_stack(ctx: StackedContext, stack_id: str) -> SyncStackResult:
    """Rebase and force-push every stage that has fallen behind its base ref.

    Stages are processed in order and the first failure stops the run. Stages
    rebased before the failure stay rebased; running again picks up where the
    previous run stopped.

    Raises:
        StackNotFoundError: If the stack does not exist
        InvalidStackStateError: If another operation holds the stack, or no
            trunk branch can be resolved
        CommandFailedError: If a fetch, comparison, rebase or push fails
    """
    with ctx.locks.hold(stack_id, "sync"):
        stack = ctx.store.get_stack_by_id(stack_id)
        if stack is None:
            raise StackNotFoundError(stack_id)

        remote = ctx.config.remote
        try:
            ctx.git.fetch_remote(ctx.repo_root, remote, prune=True)
        except RuntimeError as e:
            raise CommandFailedError(
                f"Unable to fetch from {remote} before sync", command_failure_detail(e)
            ) from e

        sessions = ctx.store.get_implementation_sessions_by_stack_id(stack.id)
        sessions_by_stage_id = {session.stage_id: session for session in sessions}
        contexts = _resolve_contexts(ctx, stack, sessions)
        logger.info("Starting sync of stack %s (%d stages)", stack_id, len(contexts))

        results: list[SyncStackStageResult] = []
        for context in contexts:
            result = _sync_stage(ctx, stack, sessions_by_stage_id, context)
            results.append(result)

        rebased = sum(1 for result in results if result.status == "rebased")
        logger.info(
            "Completed sync of stack %s: %d rebased, %d skipped",
            stack_id,
            rebased,
            len(results) - rebased,
        )
        return SyncStackResult(
            stack_id=stack_id,
            total_stages=len(results),
            rebased_stages=rebased,
            skipped_stages=len(results) - rebased,
            stages=tuple(results),
        )


def _skipped(context: StageChainContext, reason: str) -> SyncStackStageResult:
    logger.info("Skipping stage %s: %s", context.stage_title, reason)
    return SyncStackStageResult(
        stage_id=context.stage_id,
        stage_title=context.stage_title,
        branch_name=context.branch_name,
        base_ref=context.base_ref,
        status="skipped",
        reason=reason,
    )


def _sync_stage(
    ctx: StackedContext,
    stack: Stack,
    sessions_by_stage_id: dict[str, ImplementationSession],
    context: StageChainContext,
) -> SyncStackStageResult:
    if (
        not context.is_available
        or context.session is None
        or context.branch_name is None
        or context.base_ref is None
    ):
        return _skipped(context, context.reason_if_unavailable or "Stage branch is unavailable.")

    branch_name = context.branch_name
    base_ref = context.base_ref
    if not ctx.git.ref_exists(ctx.repo_root, branch_name):
        return _skipped(context, STAGE_UNSTARTED_REASON)
    if not ctx.git.ref_exists(ctx.repo_root, base_ref):
        return _skipped(context, PREVIOUS_STAGE_UNSTARTED_REASON)

    behind_by = _count_behind(ctx, branch_name, base_ref)
    if behind_by <= 0:
        return _skipped(context, ALREADY_IN_SYNC_REASON)

    worktree_path = resolve_worktree_absolute_path(
        ctx.repo_root, context.session.worktree_path_key
    )
    upstream = _transplant_upstream(ctx, stack, sessions_by_stage_id, context)
    logger.info(
        "Rebasing stage %s (%s) onto %s, %d commits behind (upstream: %s)",
        context.stage_title,
        branch_name,
        base_ref,
        behind_by,
        upstream or "merge base",
    )
    try:
        if upstream is None:
            ctx.git.rebase(worktree_path, base_ref)
        else:
            ctx.git.rebase_onto(worktree_path, base_ref, upstream, branch_name)
    except RuntimeError as e:
        abort_rebase(ctx, worktree_path)
        raise CommandFailedError(
            f"Failed to sync stage {context.stage_title}",
            f"{command_failure_detail(e)}. Rebase was automatically aborted.",
        ) from e

    try:
        ctx.git.push_force_with_lease(worktree_path, ctx.config.remote, branch_name)
    except RuntimeError as e:
        raise CommandFailedError(
            f"Failed to push synced stage {context.stage_title}", command_failure_detail(e)
        ) from e

    logger.info("Rebased and pushed stage %s", context.stage_title)
    return SyncStackStageResult(
        stage_id=context.stage_id,
        stage_title=context.stage_title,
        branch_name=branch_name,
        base_ref=base_ref,
        status="rebased",
    )


def _strip_remote(ref: str, remote: str) -> str:
    return ref.removeprefix(f"{remote}/")


def _unique_non_empty(values: list[str | None]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value is None or not value.strip():
            continue
        if value.strip() not in seen:
            seen.append(value.strip())
    return seen


def _transplant_upstream(
    ctx: StackedContext,
    stack: Stack,
    sessions_by_stage_id: dict[str, ImplementationSession],
    context: StageChainContext,
) -> str | None:
    """Pick the ``rebase --onto`` upstream when a stage's parent has changed.

    A stage was branched from the stage before it. Once that parent is merged
    or otherwise replaced, the stage's base_ref no longer names the branch it
    grew from, and a plain rebase would replay the parent's old commits.

    Returns:
        None when the parent is unchanged and a plain rebase is correct

    Raises:
        InvalidStackStateError: If the parent changed but no safe boundary exists
    """
    if (
        context.index == 0
        or context.session is None
        or context.branch_name is None
        or context.base_ref is None
    ):
        return None

    remote = ctx.config.remote
    previous_stage = stack.stages[context.index - 1]
    previous_session = sessions_by_stage_id.get(previous_stage.id)

    old_parent = context.session.parent_branch_name_at_start
    if not old_parent and previous_session is not None:
        old_parent = previous_session.branch_name

    if old_parent:
        if _strip_remote(old_parent, remote) == _strip_remote(context.base_ref, remote):
            return None
    elif previous_stage.status != "done":
        return None

    anchors = _unique_non_empty(
        [
            context.session.parent_head_sha_at_start,
            previous_stage.approved_commit_sha,
            previous_stage.pull_request.head_ref_oid if previous_stage.pull_request else None,
        ]
    )
    upstream = _resolve_transplant_upstream(
        ctx,
        context.branch_name,
        parent_refs=_unique_non_empty([old_parent, context.base_ref]),
        anchors=anchors,
    )
    if upstream is None:
        source = old_parent or f"stage {previous_stage.title}"
        msg = (
            f"Unable to restack stage {context.stage_title}. "
            f"Could not determine a safe transplant boundary from {source}. "
            "Re-approve the previous stage or recreate the parent branch before syncing."
        )
        raise InvalidStackStateError(msg)

    logger.debug(
        "Transplanting %s from %s onto %s (upstream %s)",
        context.branch_name,
        old_parent,
        context.base_ref,
        upstream,
    )
    return upstream


def _resolve_transplant_upstream(
    ctx: StackedContext,
    branch_name: str,
    *,
    parent_refs: list[str],
    anchors: list[str],
) -> str | None:
    """Search for the commit the stage's own commits start after.

    Order: a recorded SHA that is still an ancestor of the stage, then a parent
    ref (local or remote-tracking) that is an ancestor or shares a merge base,
    then a merge base with a recorded SHA.
    """
    git = ctx.git
    repo_root = ctx.repo_root
    remote = ctx.config.remote

    for anchor in anchors:
        if git.resolve_commit_sha(repo_root, anchor) is None:
            continue
        if git.is_ancestor(repo_root, anchor, branch_name):
            return anchor

    for parent_ref in parent_refs:
        local = _strip_remote(parent_ref, remote)
        for candidate in _unique_non_empty([parent_ref, local, f"{remote}/{local}"]):
            if not git.ref_exists(repo_root, candidate):
                continue
            if git.is_ancestor(repo_root, candidate, branch_name):
                return candidate
            merge_base = git.merge_base(repo_root, candidate, branch_name)
            if merge_base:
                return merge_base

    for anchor in anchors:
        merge_base = git.merge_base(repo_root, anchor, branch_name)
        if merge_base:
            return merge_base

    return None


def abort_rebase(ctx: StackedContext, worktree_path: Path) -> None:
    """Best-effort ``git rebase --abort``; the rebase error is what gets reported."""
    try:
        ctx.git.abort_rebase(worktree_path)
    except RuntimeError as e:
        logger.warning("Unable to abort rebase in %s: %s", worktree_path, e)
