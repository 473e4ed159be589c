"""Data types for stacks, stages and implementation sessions."""

from dataclasses import dataclass
from typing import Literal

StackStatus = Literal["created", "planned", "started", "complete"]
StageStatus = Literal["not-started", "in-progress", "review", "approved", "done"]
StackType = Literal["feature", "bugfix", "chore"]
ReportingStageStatus = Literal["not-started", "in-progress", "review-ready", "done"]

STACK_STATUSES: tuple[StackStatus, ...] = ("created", "planned", "started", "complete")
STAGE_STATUSES: tuple[StageStatus, ...] = (
    "not-started",
    "in-progress",
    "review",
    "approved",
    "done",
)
STACK_TYPES: tuple[StackType, ...] = ("feature", "bugfix", "chore")


def to_reporting_status(status: StageStatus) -> ReportingStageStatus:
    """Collapse the five-state stage status onto the four-state reporting model.

    Both ``review`` and ``approved`` report as ``review-ready``.
    """
    if status == "review" or status == "approved":
        return "review-ready"
    return status


@dataclass(frozen=True)
class StagePullRequest:
    """The pull request backing a stage, as last recorded in the store."""

    number: int
    title: str
    state: Literal["OPEN", "MERGED", "CLOSED"]
    is_draft: bool
    url: str
    head_ref_oid: str | None = None


@dataclass(frozen=True)
class Stage:
    """One step of a stack.

    ``approved_commit_sha`` is the PR head commit that was approved. It must
    still equal the live PR head for the stage to be merged.
    """

    id: str
    title: str
    status: StageStatus
    details: str | None = None
    pull_request: StagePullRequest | None = None
    approved_commit_sha: str | None = None


@dataclass(frozen=True)
class Stack:
    """An ordered chain of dependent stages."""

    id: str
    name: str
    type: StackType
    status: StackStatus
    stages: tuple[Stage, ...]
    notes: str | None = None


@dataclass(frozen=True)
class ImplementationSession:
    """Binds a stage to the branch and worktree where it is implemented.

    The ``parent_*_at_start`` fields record what the stage was branched from, so
    a later sync can tell when the parent has been rewritten or merged.
    """

    id: str
    stack_id: str
    stage_id: str
    branch_name: str
    worktree_path_key: str
    created_at: str
    updated_at: str
    parent_head_sha_at_start: str | None = None
    parent_branch_name_at_start: str | None = None
