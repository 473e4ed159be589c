"""Tests for the JSON-backed stack store."""

import json
from pathlib import Path

import pytest

from stacked.core.stack_store.json_store import JsonStackStore

STACK_FILE = {
    "version": 1,
    "stacks": [
        {
            "id": "stack-1",
            "name": "Payments rollout",
            "type": "feature",
            "status": "started",
            "stages": [
                {
                    "id": "stage-1",
                    "title": "Schema",
                    "status": "approved",
                    "approvedCommitSha": "abc123",
                    "pullRequest": {
                        "number": 11,
                        "title": "Schema",
                        "state": "OPEN",
                        "isDraft": False,
                        "url": "https://github.com/owner/repo/pull/11",
                        "headRefOid": "abc123",
                    },
                },
                {"id": "stage-2", "title": "API", "status": "in-progress"},
            ],
            "owner": "payments-team",
        }
    ],
    "implementationSessions": [
        {
            "id": "session-1",
            "stackId": "stack-1",
            "stageId": "stage-1",
            "branchName": "payments/schema",
            "worktreePathKey": ".stacked/worktrees/schema",
            "createdAt": "2025-01-01T00:00:00Z",
            "updatedAt": "2025-01-02T00:00:00Z",
        },
        {
            "id": "session-2",
            "stackId": "stack-1",
            "stageId": "stage-2",
            "branchName": "payments/api",
            "worktreePathKey": ".stacked/worktrees/api",
            "createdAt": "2025-01-01T00:00:00Z",
            "updatedAt": "2025-01-02T00:00:00Z",
            "parentHeadShaAtStart": "abc123",
            "parentBranchNameAtStart": "payments/schema",
        },
    ],
}


@pytest.fixture
def store(tmp_path: Path) -> JsonStackStore:
    path = tmp_path / ".stacked" / "stacks.json"
    path.parent.mkdir()
    path.write_text(json.dumps(STACK_FILE), encoding="utf-8")
    return JsonStackStore(path)


def test_get_stack_by_id(store: JsonStackStore) -> None:
    stack = store.get_stack_by_id("stack-1")

    assert stack is not None
    assert stack.name == "Payments rollout"
    assert [stage.id for stage in stack.stages] == ["stage-1", "stage-2"]
    first = stack.stages[0]
    assert first.approved_commit_sha == "abc123"
    assert first.pull_request is not None
    assert first.pull_request.number == 11
    assert first.pull_request.head_ref_oid == "abc123"
    assert stack.stages[1].pull_request is None


def test_unknown_stack_is_none(store: JsonStackStore) -> None:
    assert store.get_stack_by_id("nope") is None


def test_sessions_are_filtered_by_stack(store: JsonStackStore) -> None:
    sessions = store.get_implementation_sessions_by_stack_id("stack-1")

    assert [session.branch_name for session in sessions] == ["payments/schema", "payments/api"]
    assert store.get_implementation_sessions_by_stack_id("stack-2") == []
    assert sessions[0].parent_branch_name_at_start is None
    assert sessions[1].parent_head_sha_at_start == "abc123"
    assert sessions[1].parent_branch_name_at_start == "payments/schema"


def test_set_stage_status_persists(store: JsonStackStore) -> None:
    store.set_stack_stage_status("stack-1", "stage-1", "done")

    reloaded = JsonStackStore(store.path).get_stack_by_id("stack-1")
    assert reloaded is not None
    assert reloaded.stages[0].status == "done"
    assert reloaded.stages[1].status == "in-progress"


def test_set_stage_status_unknown_stage(store: JsonStackStore) -> None:
    with pytest.raises(ValueError, match="Stage stage-9 not found"):
        store.set_stack_stage_status("stack-1", "stage-9", "done")


def test_set_stack_status_unknown_stack(store: JsonStackStore) -> None:
    with pytest.raises(ValueError, match="Stack not found: nope"):
        store.set_stack_status("nope", "complete")


def test_remove_session(store: JsonStackStore) -> None:
    assert store.remove_implementation_session_by_stack_and_stage("stack-1", "stage-1") is True
    assert store.remove_implementation_session_by_stack_and_stage("stack-1", "stage-1") is False

    remaining = store.get_implementation_sessions_by_stack_id("stack-1")
    assert [session.stage_id for session in remaining] == ["stage-2"]


def test_writes_keep_unknown_keys_and_camel_case(store: JsonStackStore) -> None:
    store.set_stack_status("stack-1", "complete")

    data = json.loads(store.path.read_text(encoding="utf-8"))
    assert data["stacks"][0]["owner"] == "payments-team"
    assert data["stacks"][0]["status"] == "complete"
    assert "implementationSessions" in data
    assert data["stacks"][0]["stages"][0]["pullRequest"]["isDraft"] is False


def test_missing_file_reads_as_empty(tmp_path: Path) -> None:
    store = JsonStackStore(tmp_path / "absent.json")

    assert store.get_stack_by_id("stack-1") is None
    assert store.get_implementation_sessions_by_stack_id("stack-1") == []


def test_initialize_creates_file_once(tmp_path: Path) -> None:
    store = JsonStackStore(tmp_path / ".stacked" / "stacks.json")

    assert store.initialize() is True
    assert store.initialize() is False
    data = json.loads(store.path.read_text(encoding="utf-8"))
    assert data == {"version": 1, "stacks": [], "implementationSessions": []}


def test_invalid_document_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "stacks.json"
    path.write_text(json.dumps({"version": 1, "stacks": [{"id": "s"}]}), encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid stack file"):
        JsonStackStore(path).get_stack_by_id("s")


def test_unsupported_version_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "stacks.json"
    path.write_text(json.dumps({"version": 2}), encoding="utf-8")

    with pytest.raises(ValueError, match="Unsupported stack file version 2"):
        JsonStackStore(path).get_stack_by_id("s")
