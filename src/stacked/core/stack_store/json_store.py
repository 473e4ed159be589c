"""Stack store persisted as a single JSON document.

The document lives at ``.stacked/stacks.json`` by default::

    {
      "version": 1,
      "stacks": [...],
      "implementationSessions": [...]
    }

Every record is validated on load. Keys this module does not know about are
preserved on write so other tools can share the file.
"""

import json
import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from stacked.core.stack_store.abc import StackStore
from stacked.core.stack_store.types import (
    ImplementationSession,
    Stack,
    StackStatus,
    StackType,
    Stage,
    StagePullRequest,
    StageStatus,
)

logger = logging.getLogger(__name__)

STACK_FILE_VERSION = 1


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class PullRequestRecord(_Record):
    number: int = Field(..., ge=1)
    title: str
    state: Literal["OPEN", "MERGED", "CLOSED"]
    is_draft: bool
    url: str
    head_ref_oid: str | None = None


class StageRecord(_Record):
    id: str = Field(..., min_length=1)
    title: str
    status: StageStatus
    details: str | None = None
    pull_request: PullRequestRecord | None = None
    approved_commit_sha: str | None = None


class StackRecord(_Record):
    id: str = Field(..., min_length=1)
    name: str
    type: StackType
    status: StackStatus
    notes: str | None = None
    stages: list[StageRecord] = Field(default_factory=list)


class SessionRecord(_Record):
    id: str = Field(..., min_length=1)
    stack_id: str
    stage_id: str
    branch_name: str = Field(..., min_length=1)
    worktree_path_key: str = Field(..., min_length=1)
    parent_head_sha_at_start: str | None = None
    parent_branch_name_at_start: str | None = None
    created_at: str
    updated_at: str


class StackFileDocument(_Record):
    version: int
    stacks: list[StackRecord] = Field(default_factory=list)
    implementation_sessions: list[SessionRecord] = Field(default_factory=list)


def _to_stack(record: StackRecord) -> Stack:
    stages = tuple(
        Stage(
            id=stage.id,
            title=stage.title,
            status=stage.status,
            details=stage.details,
            pull_request=(
                StagePullRequest(
                    number=stage.pull_request.number,
                    title=stage.pull_request.title,
                    state=stage.pull_request.state,
                    is_draft=stage.pull_request.is_draft,
                    url=stage.pull_request.url,
                    head_ref_oid=stage.pull_request.head_ref_oid,
                )
                if stage.pull_request is not None
                else None
            ),
            approved_commit_sha=stage.approved_commit_sha,
        )
        for stage in record.stages
    )
    return Stack(
        id=record.id,
        name=record.name,
        type=record.type,
        status=record.status,
        stages=stages,
        notes=record.notes,
    )


def _to_session(record: SessionRecord) -> ImplementationSession:
    return ImplementationSession(
        id=record.id,
        stack_id=record.stack_id,
        stage_id=record.stage_id,
        branch_name=record.branch_name,
        worktree_path_key=record.worktree_path_key,
        created_at=record.created_at,
        updated_at=record.updated_at,
        parent_head_sha_at_start=record.parent_head_sha_at_start,
        parent_branch_name_at_start=record.parent_branch_name_at_start,
    )


class JsonStackStore(StackStore):
    """Production store reading and writing a JSON document on every call."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> StackFileDocument:
        if not self._path.exists():
            return StackFileDocument(version=STACK_FILE_VERSION)

        raw = self._path.read_text(encoding="utf-8")
        try:
            document = StackFileDocument.model_validate_json(raw)
        except ValidationError as e:
            msg = f"Invalid stack file at {self._path}:\n{e}"
            raise ValueError(msg) from e

        if document.version != STACK_FILE_VERSION:
            msg = (
                f"Unsupported stack file version {document.version} at {self._path} "
                f"(expected {STACK_FILE_VERSION})"
            )
            raise ValueError(msg)
        return document

    def _write(self, document: StackFileDocument) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = document.model_dump(mode="json", by_alias=True, exclude_none=True)
        tmp_path = self._path.with_name(f"{self._path.name}.tmp")
        tmp_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        tmp_path.replace(self._path)
        logger.debug("Wrote stack file %s", self._path)

    def _find_stack(self, document: StackFileDocument, stack_id: str) -> StackRecord:
        for stack in document.stacks:
            if stack.id == stack_id:
                return stack
        msg = f"Stack not found: {stack_id}"
        raise ValueError(msg)

    def initialize(self) -> bool:
        """Create an empty stack file if none exists.

        Returns:
            True if the file was created, False if it already existed
        """
        if self._path.exists():
            return False
        self._write(StackFileDocument(version=STACK_FILE_VERSION))
        return True

    def get_stack_by_id(self, stack_id: str) -> Stack | None:
        for record in self._read().stacks:
            if record.id == stack_id:
                return _to_stack(record)
        return None

    def get_implementation_sessions_by_stack_id(
        self, stack_id: str
    ) -> list[ImplementationSession]:
        return [
            _to_session(record)
            for record in self._read().implementation_sessions
            if record.stack_id == stack_id
        ]

    def set_stack_stage_status(self, stack_id: str, stage_id: str, status: StageStatus) -> None:
        document = self._read()
        stack = self._find_stack(document, stack_id)
        for stage in stack.stages:
            if stage.id == stage_id:
                stage.status = status
                self._write(document)
                return
        msg = f"Stage {stage_id} not found in stack {stack_id}"
        raise ValueError(msg)

    def set_stack_status(self, stack_id: str, status: StackStatus) -> None:
        document = self._read()
        self._find_stack(document, stack_id).status = status
        self._write(document)

    def remove_implementation_session_by_stack_and_stage(
        self, stack_id: str, stage_id: str
    ) -> bool:
        document = self._read()
        remaining = [
            record
            for record in document.implementation_sessions
            if not (record.stack_id == stack_id and record.stage_id == stage_id)
        ]
        if len(remaining) == len(document.implementation_sessions):
            return False
        document.implementation_sessions = remaining
        self._write(document)
        return True
