"""Tests for the sequential merge-down engine."""

from pathlib import Path

import pytest

from stacked.core.context import StackedContext
from stacked.core.errors import CommandFailedError, InvalidStackStateError, StackNotFoundError
from stacked.core.git.fake import FakeGit, RebaseCall
from stacked.core.github.fake import FakeGitHub
from stacked.core.github.types import PRState
from stacked.core.merge_down import merge_down_stack
from stacked.core.stack_store.fake import FakeStackStore
from stacked.core.stack_store.types import ImplementationSession, Stage
from tests.fakes.time import FakeTime
from tests.test_utils.builders import (
    REPO_ROOT,
    make_session,
    make_stack,
    make_stage,
    worktree_path,
)

WT1 = worktree_path(1)
WT2 = worktree_path(2)


def _build(
    *,
    stages: tuple[Stage, ...] | None = None,
    sessions: list[ImplementationSession] | None = None,
    git: FakeGit | None = None,
    github: FakeGitHub | None = None,
    time: FakeTime | None = None,
) -> tuple[StackedContext, FakeGit, FakeGitHub, FakeStackStore]:
    if stages is None:
        stages = (make_stage(1), make_stage(2))
    if sessions is None:
        sessions = [make_session(1), make_session(2)]
    if git is None:
        git = _git()
    if github is None:
        github = _github()
    store = FakeStackStore(stacks=[make_stack(*stages)], sessions=sessions)
    ctx = StackedContext.for_test(git=git, github=github, store=store, time=time)
    return ctx, git, github, store


def _git(**kwargs: object) -> FakeGit:
    defaults: dict = {
        "refs": {
            "main": "m1",
            "origin/main": "m2",
            "feature/stage-1": "sha-1",
            "feature/stage-2": "sha-2",
        },
        "existing_paths": {WT1, WT2},
    }
    defaults.update(kwargs)
    return FakeGit(**defaults)


def _github(**kwargs: object) -> FakeGitHub:
    states: dict[int, PRState] = {11: "OPEN", 12: "OPEN"}
    defaults: dict = {"pr_states": states, "pr_head_shas": {11: "sha-1", 12: "sha-2"}}
    defaults.update(kwargs)
    return FakeGitHub(**defaults)


def _no_mutations(git: FakeGit, github: FakeGitHub, store: FakeStackStore) -> bool:
    return (
        git.rebases == []
        and git.pushed_branches == []
        and git.removed_worktrees == []
        and git.deleted_branches == []
        and github.updated_pr_bases == []
        and github.merged_prs == []
        and store.stage_status_updates == []
        and store.stack_status_updates == []
        and store.removed_sessions == []
    )


def test_merge_down_merges_stages_in_order() -> None:
    ctx, git, github, store = _build()

    result = merge_down_stack(ctx, "stack-1")

    assert result.merged_stages == 2
    assert result.default_branch == "main"
    assert [stage.pull_request_number for stage in result.stages] == [11, 12]
    assert [stage.branch_name for stage in result.stages] == [
        "feature/stage-1",
        "feature/stage-2",
    ]
    assert github.updated_pr_bases == [(11, "main"), (12, "main")]
    assert github.merged_prs == [11, 12]
    assert store.stage_status_updates == [
        ("stack-1", "stage-1", "done"),
        ("stack-1", "stage-2", "done"),
    ]
    assert store.stack_status_updates == [("stack-1", "complete")]
    assert store.sessions == []


def test_merge_down_fetches_trunk_after_every_merge() -> None:
    ctx, git, _, _ = _build()

    merge_down_stack(ctx, "stack-1")

    assert git.operation_log == [
        "fetch origin main",
        f"rebase {WT1} origin/main",
        "push origin feature/stage-1",
        f"worktree remove {WT1}",
        "branch -D feature/stage-1",
        "fetch origin main",
        f"rebase {WT2} origin/main",
        "push origin feature/stage-2",
        f"worktree remove {WT2}",
        "branch -D feature/stage-2",
        "fetch origin main",
    ]


def test_merge_down_replays_later_stage_from_old_parent_tip() -> None:
    ctx, git, _, _ = _build()

    merge_down_stack(ctx, "stack-1")

    assert git.rebases == [
        RebaseCall(cwd=WT1, onto="origin/main", upstream=None, branch=None),
        RebaseCall(cwd=WT2, onto="origin/main", upstream="sha-1", branch="feature/stage-2"),
    ]


def test_merge_down_uses_recorded_pr_head_when_parent_branch_is_gone() -> None:
    stages = (
        make_stage(1, status="done", head_ref_oid="old-tip-1"),
        make_stage(2),
    )
    ctx, git, github, _ = _build(stages=stages, sessions=[make_session(2)])

    result = merge_down_stack(ctx, "stack-1")

    assert result.merged_stages == 1
    assert git.rebases == [
        RebaseCall(cwd=WT2, onto="origin/main", upstream="old-tip-1", branch="feature/stage-2"),
    ]
    assert github.merged_prs == [12]
    assert github.head_lookups == [12]


def test_merge_down_second_run_only_fetches() -> None:
    ctx, git, github, store = _build()
    merge_down_stack(ctx, "stack-1")
    log_after_first_run = list(git.operation_log)

    result = merge_down_stack(ctx, "stack-1")

    assert result.merged_stages == 0
    assert result.stages == ()
    assert git.operation_log == [*log_after_first_run, "fetch origin main"]
    assert github.merged_prs == [11, 12]
    assert github.head_lookups == [11, 12]


def test_merge_down_skips_merge_of_already_merged_pr() -> None:
    states: dict[int, PRState] = {11: "MERGED", 12: "OPEN"}
    ctx, git, github, store = _build(github=_github(pr_states=states))

    result = merge_down_stack(ctx, "stack-1")

    assert result.merged_stages == 2
    assert github.merged_prs == [12]
    assert github.updated_pr_bases == [(12, "main")]
    assert git.pushed_branches == [("origin", "feature/stage-2")]
    assert git.removed_worktrees == [WT1, WT2]
    assert ("stack-1", "stage-1", "done") in store.stage_status_updates


def test_merge_down_tolerates_already_removed_worktree_and_branch() -> None:
    git = _git(
        refs={"main": "m1", "origin/main": "m2", "feature/stage-2": "sha-2"},
        existing_paths={WT2},
    )
    ctx, git, _, _ = _build(git=git)

    result = merge_down_stack(ctx, "stack-1")

    assert result.merged_stages == 2
    assert git.removed_worktrees == [WT2]
    assert git.deleted_branches == ["feature/stage-2"]


def test_merge_down_rebase_failure_stops_after_earlier_merges() -> None:
    ctx, git, github, store = _build(git=_git(rebase_failures={WT2}))

    with pytest.raises(CommandFailedError) as exc_info:
        merge_down_stack(ctx, "stack-1")

    assert exc_info.value.message == (
        'Failed to rebase stage "Stage 2": CONFLICT (content): Merge conflict'
    )
    assert git.aborted_rebases == [WT2]
    assert github.merged_prs == [11]
    assert store.stage_status_updates == [("stack-1", "stage-1", "done")]
    assert store.stack_status_updates == []


def test_merge_down_resumes_after_partial_failure() -> None:
    ctx, git, github, store = _build(github=_github(merge_failures={12}))

    with pytest.raises(CommandFailedError, match='Failed to merge PR #12 for stage "Stage 2"'):
        merge_down_stack(ctx, "stack-1")

    stack = store.get_stack_by_id("stack-1")
    assert stack is not None
    assert [stage.status for stage in stack.stages] == ["done", "approved"]
    assert [session.stage_id for session in store.sessions] == ["stage-2"]


def test_merge_down_push_failure_names_stage() -> None:
    ctx, _, github, _ = _build(git=_git(push_failures={"feature/stage-1"}))

    with pytest.raises(CommandFailedError) as exc_info:
        merge_down_stack(ctx, "stack-1")

    assert exc_info.value.message == (
        'Failed to push rebased branch for stage "Stage 1": stale info'
    )
    assert github.updated_pr_bases == []


def test_merge_down_retarget_failure_names_pr_and_stage() -> None:
    ctx, _, github, _ = _build(github=_github(retarget_failures={12}))

    with pytest.raises(CommandFailedError) as exc_info:
        merge_down_stack(ctx, "stack-1")

    assert exc_info.value.prefix == 'Failed to retarget PR #12 for stage "Stage 2"'
    assert github.merged_prs == [11]


def test_merge_down_cleanup_failure_reports_merge_succeeded() -> None:
    ctx, _, github, store = _build(git=_git(remove_worktree_failures={WT1}))

    with pytest.raises(CommandFailedError) as exc_info:
        merge_down_stack(ctx, "stack-1")

    assert exc_info.value.prefix == f"Merged successfully, but failed to remove worktree {WT1}"
    assert github.merged_prs == [11]
    assert store.stage_status_updates == []


@pytest.mark.parametrize("stale_index", [1, 2])
def test_merge_down_rejects_stale_approval_before_any_mutation(stale_index: int) -> None:
    head_shas = {11: "sha-1", 12: "sha-2"}
    head_shas[10 + stale_index] = "pushed-after-approval"
    ctx, git, github, store = _build(github=_github(pr_head_shas=head_shas))

    with pytest.raises(InvalidStackStateError) as exc_info:
        merge_down_stack(ctx, "stack-1")

    assert exc_info.value.message == (
        f'Stage "Stage {stale_index}" approval is stale. '
        "Re-approve the latest commit before merging."
    )
    assert _no_mutations(git, github, store)


def test_merge_down_rejects_unapproved_stage() -> None:
    stages = (make_stage(1), make_stage(2, status="review"))
    ctx, git, github, store = _build(stages=stages)

    with pytest.raises(InvalidStackStateError, match='"Stage 2" must be approved'):
        merge_down_stack(ctx, "stack-1")

    assert _no_mutations(git, github, store)


def test_merge_down_rejects_approval_without_sha() -> None:
    stages = (make_stage(1, approved_sha=""), make_stage(2))
    ctx, git, github, store = _build(stages=stages)

    with pytest.raises(InvalidStackStateError) as exc_info:
        merge_down_stack(ctx, "stack-1")

    assert exc_info.value.message == (
        'Stage "Stage 1" is approved without an approved commit SHA. Re-approve before merging.'
    )
    assert github.head_lookups == []


def test_merge_down_rejects_stage_without_pull_request() -> None:
    stages = (make_stage(1), make_stage(2, with_pr=False))
    ctx, git, github, store = _build(stages=stages)

    with pytest.raises(InvalidStackStateError) as exc_info:
        merge_down_stack(ctx, "stack-1")

    assert exc_info.value.message == 'Stage "Stage 2" is missing a pull request.'
    assert github.head_lookups == []


def test_merge_down_rejects_stage_without_session() -> None:
    ctx, git, github, store = _build(sessions=[make_session(1)])

    with pytest.raises(InvalidStackStateError) as exc_info:
        merge_down_stack(ctx, "stack-1")

    assert exc_info.value.message == 'Stage "Stage 2" is missing branch/worktree session data.'
    assert _no_mutations(git, github, store)


def test_merge_down_rejects_dirty_repository() -> None:
    ctx, git, github, store = _build(git=_git(dirty_paths={REPO_ROOT}))

    with pytest.raises(InvalidStackStateError, match="uncommitted changes"):
        merge_down_stack(ctx, "stack-1")

    assert git.operation_log == []


def test_merge_down_status_failure_is_command_failure() -> None:
    ctx, git, _, _ = _build(git=_git(status_failures={REPO_ROOT}))

    with pytest.raises(CommandFailedError) as exc_info:
        merge_down_stack(ctx, "stack-1")

    assert exc_info.value.message == (
        "Unable to inspect repository status: fatal: not a git repository: /test/repo"
    )


def test_merge_down_unresolvable_default_branch() -> None:
    ctx, git, _, _ = _build(git=_git(default_branch=None))

    with pytest.raises(InvalidStackStateError, match="default base branch"):
        merge_down_stack(ctx, "stack-1")

    assert git.operation_log == []


def test_merge_down_trunk_fetch_failure() -> None:
    ctx, _, github, _ = _build(git=_git(fetch_failures={"main"}))

    with pytest.raises(CommandFailedError) as exc_info:
        merge_down_stack(ctx, "stack-1")

    assert exc_info.value.prefix == "Unable to fetch origin/main"
    assert github.head_lookups == []


def test_merge_down_retries_transient_head_lookup_failures() -> None:
    time = FakeTime()
    ctx, _, github, _ = _build(github=_github(head_lookup_failures={11: 2}), time=time)

    result = merge_down_stack(ctx, "stack-1")

    assert result.merged_stages == 2
    assert github.head_lookups == [11, 11, 11, 12]
    assert time.sleep_calls == [1.0, 2.0]


def test_merge_down_gives_up_after_three_head_lookups() -> None:
    time = FakeTime()
    ctx, git, github, store = _build(github=_github(head_lookup_failures={11: 3}), time=time)

    with pytest.raises(CommandFailedError) as exc_info:
        merge_down_stack(ctx, "stack-1")

    assert exc_info.value.message == "Unable to inspect PR #11: HTTP 502: Bad Gateway"
    assert github.head_lookups == [11, 11, 11]
    assert _no_mutations(git, github, store)


def test_merge_down_unknown_stack() -> None:
    ctx, _, _, _ = _build()

    with pytest.raises(StackNotFoundError, match="Stack not found: other"):
        merge_down_stack(ctx, "other")


def test_merge_down_empty_stack() -> None:
    ctx, git, _, _ = _build(stages=(), sessions=[])

    with pytest.raises(InvalidStackStateError) as exc_info:
        merge_down_stack(ctx, "stack-1")

    assert exc_info.value.message == "This stack has no stages to merge."
    assert git.operation_log == []


def test_merge_down_refuses_when_stack_is_busy() -> None:
    ctx, git, _, _ = _build()

    with ctx.locks.hold("stack-1", "sync"):
        with pytest.raises(InvalidStackStateError) as exc_info:
            merge_down_stack(ctx, "stack-1")

    assert exc_info.value.message == (
        "Another operation is already running for stack stack-1; cannot merge down."
    )
    assert git.operation_log == []


def test_merge_down_resolves_absolute_worktree_keys(tmp_path: Path) -> None:
    session = make_session(1)
    absolute = tmp_path / "wt-1"
    session = ImplementationSession(
        id=session.id,
        stack_id=session.stack_id,
        stage_id=session.stage_id,
        branch_name=session.branch_name,
        worktree_path_key=str(absolute),
        created_at=session.created_at,
        updated_at=session.updated_at,
    )
    git = _git(existing_paths={absolute})
    ctx, git, _, _ = _build(stages=(make_stage(1),), sessions=[session], git=git)

    merge_down_stack(ctx, "stack-1")

    assert git.rebases[0].cwd == absolute
    assert git.removed_worktrees == [absolute]
