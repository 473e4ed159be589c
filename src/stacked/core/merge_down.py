"""Sequential merge-down engine.

Collapses a stack into trunk one stage at a time. Every stage is validated
before anything is touched; then, in order, each stage is rebased onto the
freshly fetched trunk, force-pushed, retargeted to trunk, squash-merged and
cleaned up. Trunk is re-fetched after every merge since it just advanced.

The run is resumable rather than transactional. A failure part-way through
leaves earlier stages merged; the next run skips ``done`` stages and PRs that
are already merged on GitHub.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from stacked.core.context import StackedContext
from stacked.core.errors import (
    CommandFailedError,
    InvalidStackStateError,
    StackNotFoundError,
    command_failure_detail,
)
from stacked.core.retry import retry_with_backoff
from stacked.core.stack_store.types import ImplementationSession, Stack, Stage
from stacked.core.stack_sync import abort_rebase
from stacked.core.worktree_paths import resolve_worktree_absolute_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeDownStageResult:
    stage_id: str
    stage_title: str
    pull_request_number: int
    branch_name: str


@dataclass(frozen=True)
class MergeDownStackResult:
    """Outcome of a merge-down.

    ``stages`` lists only the stages merged by this call; stages finished by an
    earlier run are not reported again.
    """

    stack_id: str
    default_branch: str
    merged_stages: int
    stages: tuple[MergeDownStageResult, ...]


@dataclass(frozen=True)
class _StagePlan:
    """A live stage that passed validation, with everything needed to merge it."""

    index: int
    stage: Stage
    pull_request_number: int
    session: ImplementationSession
    worktree_path: Path


def merge_down_stack(ctx: StackedContext, stack_id: str) -> MergeDownStackResult:
    """Merge every stage of a stack into trunk, in order.

    Raises:
        StackNotFoundError: If the stack does not exist
        InvalidStackStateError: If a precondition fails; nothing has been mutated
        CommandFailedError: If a git or gh command fails part-way through
    """
    with ctx.locks.hold(stack_id, "merge down"):
        stack = ctx.store.get_stack_by_id(stack_id)
        if stack is None:
            raise StackNotFoundError(stack_id)
        if not stack.stages:
            msg = "This stack has no stages to merge."
            raise InvalidStackStateError(msg)

        _ensure_repository_is_clean(ctx)

        default_branch = _resolve_default_branch(ctx)
        _fetch_default_branch(ctx, default_branch)

        sessions_by_stage_id = {
            session.stage_id: session
            for session in ctx.store.get_implementation_sessions_by_stack_id(stack_id)
        }
        plans = _validate_stack(ctx, stack, sessions_by_stage_id)
        stage_tip_by_id = _resolve_stage_tips(ctx, stack, sessions_by_stage_id)

        logger.info(
            "Starting merge-down of stack %s into %s (%d stages to merge)",
            stack_id,
            default_branch,
            len(plans),
        )

        merged: list[MergeDownStageResult] = []
        for plan in plans:
            old_parent_tip = None
            if plan.index > 0:
                old_parent_tip = stage_tip_by_id.get(stack.stages[plan.index - 1].id)

            merged.append(_merge_stage(ctx, stack, plan, default_branch, old_parent_tip))
            _fetch_default_branch(ctx, default_branch)

        ctx.store.set_stack_status(stack_id, "complete")
        logger.info("Completed merge-down of stack %s: %d merged", stack_id, len(merged))

        return MergeDownStackResult(
            stack_id=stack_id,
            default_branch=default_branch,
            merged_stages=len(merged),
            stages=tuple(merged),
        )


def _ensure_repository_is_clean(ctx: StackedContext) -> None:
    try:
        dirty = ctx.git.has_uncommitted_changes(ctx.repo_root)
    except RuntimeError as e:
        raise CommandFailedError(
            "Unable to inspect repository status", command_failure_detail(e)
        ) from e

    if dirty:
        msg = "Repository has uncommitted changes. Commit or stash them before merging down."
        raise InvalidStackStateError(msg)


def _resolve_default_branch(ctx: StackedContext) -> str:
    try:
        return ctx.git.detect_default_branch(
            ctx.repo_root, remote=ctx.config.remote, configured=ctx.config.trunk_branch
        )
    except RuntimeError as e:
        raise InvalidStackStateError(str(e)) from e


def _fetch_default_branch(ctx: StackedContext, default_branch: str) -> None:
    remote = ctx.config.remote
    try:
        ctx.git.fetch_branch(ctx.repo_root, remote, default_branch)
    except RuntimeError as e:
        raise CommandFailedError(
            f"Unable to fetch {remote}/{default_branch}", command_failure_detail(e)
        ) from e


def _lookup_pr_head_sha(ctx: StackedContext, pr_number: int) -> str | None:
    @retry_with_backoff(max_attempts=3, base_delay=1.0, ctx=ctx)
    def lookup() -> str | None:
        return ctx.github.get_pr_head_sha(ctx.repo_root, pr_number)

    try:
        return lookup()
    except RuntimeError as e:
        raise CommandFailedError(
            f"Unable to inspect PR #{pr_number}", command_failure_detail(e)
        ) from e


def _validate_stage_is_merge_safe(ctx: StackedContext, stage: Stage, pr_number: int) -> None:
    if stage.status == "done":
        return

    if stage.status != "approved":
        msg = f'Stage "{stage.title}" must be approved before merge down.'
        raise InvalidStackStateError(msg)

    if not stage.approved_commit_sha:
        msg = (
            f'Stage "{stage.title}" is approved without an approved commit SHA. '
            "Re-approve before merging."
        )
        raise InvalidStackStateError(msg)

    head_sha = _lookup_pr_head_sha(ctx, pr_number)
    if head_sha is None or head_sha != stage.approved_commit_sha:
        msg = (
            f'Stage "{stage.title}" approval is stale. '
            "Re-approve the latest commit before merging."
        )
        raise InvalidStackStateError(msg)


def _validate_stack(
    ctx: StackedContext,
    stack: Stack,
    sessions_by_stage_id: dict[str, ImplementationSession],
) -> list[_StagePlan]:
    """Check every precondition for every stage before anything is mutated."""
    pr_numbers: list[int] = []
    for stage in stack.stages:
        if stage.pull_request is None or stage.pull_request.number <= 0:
            msg = f'Stage "{stage.title}" is missing a pull request.'
            raise InvalidStackStateError(msg)
        pr_numbers.append(stage.pull_request.number)

    for stage, pr_number in zip(stack.stages, pr_numbers, strict=True):
        _validate_stage_is_merge_safe(ctx, stage, pr_number)

    plans: list[_StagePlan] = []
    for index, (stage, pr_number) in enumerate(zip(stack.stages, pr_numbers, strict=True)):
        if stage.status == "done":
            continue

        session = sessions_by_stage_id.get(stage.id)
        if session is None or not session.branch_name or not session.worktree_path_key:
            msg = f'Stage "{stage.title}" is missing branch/worktree session data.'
            raise InvalidStackStateError(msg)

        plans.append(
            _StagePlan(
                index=index,
                stage=stage,
                pull_request_number=pr_number,
                session=session,
                worktree_path=resolve_worktree_absolute_path(
                    ctx.repo_root, session.worktree_path_key
                ),
            )
        )
    return plans


def _resolve_stage_tips(
    ctx: StackedContext,
    stack: Stack,
    sessions_by_stage_id: dict[str, ImplementationSession],
) -> dict[str, str]:
    """Capture each stage's pre-rebase tip.

    Later stages are replayed with ``rebase --onto`` from their parent's old
    tip, which has moved by the time they are processed.
    """
    remote = ctx.config.remote
    tips: dict[str, str] = {}
    for stage in stack.stages:
        session = sessions_by_stage_id.get(stage.id)
        tip: str | None = None
        if session is not None and session.branch_name:
            tip = ctx.git.resolve_commit_sha(ctx.repo_root, session.branch_name)
            if tip is None:
                tip = ctx.git.resolve_commit_sha(
                    ctx.repo_root, f"{remote}/{session.branch_name}"
                )
        if tip is None and stage.pull_request is not None:
            tip = stage.pull_request.head_ref_oid
        if tip:
            tips[stage.id] = tip
    return tips


def _merge_stage(
    ctx: StackedContext,
    stack: Stack,
    plan: _StagePlan,
    default_branch: str,
    old_parent_tip: str | None,
) -> MergeDownStageResult:
    stage = plan.stage
    branch_name = plan.session.branch_name
    pr_number = plan.pull_request_number

    pr_state = ctx.github.get_pr_state(ctx.repo_root, pr_number)
    if pr_state == "MERGED":
        logger.info("PR #%s for stage %s is already merged", pr_number, stage.title)
    else:
        _rebase_and_push_stage(ctx, plan, default_branch, old_parent_tip)
        _retarget_and_merge_pull_request(ctx, plan, default_branch)

    _cleanup_worktree_and_branch(ctx, plan.worktree_path, branch_name)

    ctx.store.set_stack_stage_status(stack.id, stage.id, "done")
    ctx.store.remove_implementation_session_by_stack_and_stage(stack.id, stage.id)
    logger.info("Merged stage %s (PR #%s)", stage.title, pr_number)

    return MergeDownStageResult(
        stage_id=stage.id,
        stage_title=stage.title,
        pull_request_number=pr_number,
        branch_name=branch_name,
    )


def _rebase_and_push_stage(
    ctx: StackedContext,
    plan: _StagePlan,
    default_branch: str,
    old_parent_tip: str | None,
) -> None:
    remote = ctx.config.remote
    trunk_ref = f"{remote}/{default_branch}"
    branch_name = plan.session.branch_name
    title = plan.stage.title

    try:
        if old_parent_tip is not None:
            logger.debug(
                "Replaying %s onto %s from old parent tip %s",
                branch_name,
                trunk_ref,
                old_parent_tip,
            )
            ctx.git.rebase_onto(plan.worktree_path, trunk_ref, old_parent_tip, branch_name)
        else:
            ctx.git.rebase(plan.worktree_path, trunk_ref)
    except RuntimeError as e:
        abort_rebase(ctx, plan.worktree_path)
        raise CommandFailedError(
            f'Failed to rebase stage "{title}"', command_failure_detail(e)
        ) from e

    try:
        ctx.git.push_force_with_lease(plan.worktree_path, remote, branch_name)
    except RuntimeError as e:
        raise CommandFailedError(
            f'Failed to push rebased branch for stage "{title}"', command_failure_detail(e)
        ) from e


def _retarget_and_merge_pull_request(
    ctx: StackedContext, plan: _StagePlan, default_branch: str
) -> None:
    pr_number = plan.pull_request_number
    title = plan.stage.title

    try:
        ctx.github.update_pr_base_branch(ctx.repo_root, pr_number, default_branch)
    except RuntimeError as e:
        raise CommandFailedError(
            f'Failed to retarget PR #{pr_number} for stage "{title}"', command_failure_detail(e)
        ) from e

    try:
        ctx.github.merge_pr(ctx.repo_root, pr_number, squash=True)
    except RuntimeError as e:
        raise CommandFailedError(
            f'Failed to merge PR #{pr_number} for stage "{title}"', command_failure_detail(e)
        ) from e


def _cleanup_worktree_and_branch(
    ctx: StackedContext, worktree_path: Path, branch_name: str
) -> None:
    """Remove the stage worktree and local branch, skipping whichever is already gone."""
    if ctx.git.path_exists(worktree_path):
        try:
            ctx.git.remove_worktree(ctx.repo_root, worktree_path, force=True)
        except RuntimeError as e:
            raise CommandFailedError(
                f"Merged successfully, but failed to remove worktree {worktree_path}",
                command_failure_detail(e),
            ) from e
    else:
        logger.debug("Worktree %s already removed", worktree_path)

    if ctx.git.local_branch_exists(ctx.repo_root, branch_name):
        try:
            ctx.git.delete_branch(ctx.repo_root, branch_name, force=True)
        except RuntimeError as e:
            raise CommandFailedError(
                f"Merged successfully, but failed to delete local branch {branch_name}",
                command_failure_detail(e),
            ) from e
    else:
        logger.debug("Local branch %s already deleted", branch_name)
