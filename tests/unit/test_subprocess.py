"""Tests for subprocess error enrichment."""

import subprocess
from pathlib import Path

import pytest

from stacked.core.subprocess import run_subprocess_with_context


def test_failure_includes_context_and_stderr(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        raise subprocess.CalledProcessError(1, cmd, output="", stderr="fatal: bad revision\n")

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(RuntimeError) as exc_info:
        run_subprocess_with_context(["git", "rev-list", "a..b"], "compare a against b")

    message = str(exc_info.value)
    assert message.startswith("Failed to compare a against b")
    assert "Command: git rev-list a..b" in message
    assert "Exit code: 1" in message
    assert message.splitlines()[-1] == "stderr: fatal: bad revision"


def test_timeout_is_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        raise subprocess.TimeoutExpired(cmd, 8.0)

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(RuntimeError, match="Timed out after 8.0s while trying to fetch"):
        run_subprocess_with_context(["git", "fetch"], "fetch", timeout=8.0)


def test_missing_binary_is_reported(tmp_path: Path) -> None:
    with pytest.raises(RuntimeError, match="Command not found while trying to run gh"):
        run_subprocess_with_context(["definitely-not-a-real-binary-xyz"], "run gh", cwd=tmp_path)


def test_check_false_returns_result(monkeypatch: pytest.MonkeyPatch) -> None:
    completed = subprocess.CompletedProcess(["git"], 128, stdout="", stderr="fatal")

    def fake_run(cmd: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        assert kwargs["check"] is False
        return completed

    monkeypatch.setattr(subprocess, "run", fake_run)

    result = run_subprocess_with_context(["git", "status"], "inspect status", check=False)

    assert result.returncode == 128
