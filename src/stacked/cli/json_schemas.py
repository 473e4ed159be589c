"""Pydantic models for JSON output schemas.

This module defines the validated JSON schemas for CLI commands that support
--json output. These models ensure type safety and provide runtime validation
of JSON output structures.
"""

from pydantic import BaseModel, ConfigDict, Field

from stacked.core.merge_down import MergeDownStackResult
from stacked.core.stack_store.types import Stack, to_reporting_status
from stacked.core.stack_sync import StageSyncMetadata, SyncStackResult


class StageStatusInfo(BaseModel):
    """Drift of one stage in `stacked status --json` output.

    Attributes:
        stage_id: Stage identifier
        stage_title: Stage title
        stage_status: Reporting status ("not-started", "in-progress", "review-ready", "done")
        branch_name: Stage branch (None if the stage was never started)
        base_ref: Ref the stage is based on (None if unresolvable)
        is_out_of_sync: Whether the base ref has commits the branch lacks
        behind_by: Number of such commits
        reason_if_unavailable: Why drift could not be measured (None if it was)
    """

    model_config = ConfigDict(strict=True)

    stage_id: str
    stage_title: str
    stage_status: str = Field(..., pattern="^(not-started|in-progress|review-ready|done)$")
    branch_name: str | None
    base_ref: str | None
    is_out_of_sync: bool
    behind_by: int = Field(..., ge=0)
    reason_if_unavailable: str | None


class StatusCommandResponse(BaseModel):
    """JSON response schema for the `stacked status --json` command."""

    model_config = ConfigDict(strict=True)

    stack_id: str
    stack_name: str
    stack_status: str
    stages: list[StageStatusInfo]


class SyncStageInfo(BaseModel):
    """Per-stage outcome in `stacked sync --json` output."""

    model_config = ConfigDict(strict=True)

    stage_id: str
    stage_title: str
    branch_name: str | None
    base_ref: str | None
    status: str = Field(..., pattern="^(rebased|skipped)$")
    reason: str | None


class SyncCommandResponse(BaseModel):
    """JSON response schema for the `stacked sync --json` command."""

    model_config = ConfigDict(strict=True)

    stack_id: str
    total_stages: int = Field(..., ge=0)
    rebased_stages: int = Field(..., ge=0)
    skipped_stages: int = Field(..., ge=0)
    stages: list[SyncStageInfo]


class MergedStageInfo(BaseModel):
    """A stage merged by `stacked merge-down --json`."""

    model_config = ConfigDict(strict=True)

    stage_id: str
    stage_title: str
    pull_request_number: int = Field(..., ge=1)
    branch_name: str


class MergeDownCommandResponse(BaseModel):
    """JSON response schema for the `stacked merge-down --json` command."""

    model_config = ConfigDict(strict=True)

    stack_id: str
    default_branch: str
    merged_stages: int = Field(..., ge=0)
    stages: list[MergedStageInfo]


def status_response(
    stack: Stack, report: dict[str, StageSyncMetadata]
) -> StatusCommandResponse:
    stages: list[StageStatusInfo] = []
    for stage in stack.stages:
        metadata = report[stage.id]
        stages.append(
            StageStatusInfo(
                stage_id=stage.id,
                stage_title=stage.title,
                stage_status=to_reporting_status(stage.status),
                branch_name=metadata.branch_name,
                base_ref=metadata.base_ref,
                is_out_of_sync=metadata.is_out_of_sync,
                behind_by=metadata.behind_by,
                reason_if_unavailable=metadata.reason_if_unavailable,
            )
        )
    return StatusCommandResponse(
        stack_id=stack.id,
        stack_name=stack.name,
        stack_status=stack.status,
        stages=stages,
    )


def sync_response(result: SyncStackResult) -> SyncCommandResponse:
    return SyncCommandResponse(
        stack_id=result.stack_id,
        total_stages=result.total_stages,
        rebased_stages=result.rebased_stages,
        skipped_stages=result.skipped_stages,
        stages=[
            SyncStageInfo(
                stage_id=stage.stage_id,
                stage_title=stage.stage_title,
                branch_name=stage.branch_name,
                base_ref=stage.base_ref,
                status=stage.status,
                reason=stage.reason,
            )
            for stage in result.stages
        ],
    )


def merge_down_response(result: MergeDownStackResult) -> MergeDownCommandResponse:
    return MergeDownCommandResponse(
        stack_id=result.stack_id,
        default_branch=result.default_branch,
        merged_stages=result.merged_stages,
        stages=[
            MergedStageInfo(
                stage_id=stage.stage_id,
                stage_title=stage.stage_title,
                pull_request_number=stage.pull_request_number,
                branch_name=stage.branch_name,
            )
            for stage in result.stages
        ],
    )
