"""Tests for the init command."""

import json
from pathlib import Path

from click.testing import CliRunner

from stacked.cli.cli import cli
from stacked.core.context import StackedContext


def test_init_creates_config_and_stack_file(tmp_path: Path) -> None:
    ctx = StackedContext.for_test(repo_root=tmp_path)
    runner = CliRunner()

    result = runner.invoke(cli, ["init"], obj=ctx)

    assert result.exit_code == 0, result.output
    assert (tmp_path / ".stacked" / "config.toml").exists()
    data = json.loads((tmp_path / ".stacked" / "stacks.json").read_text(encoding="utf-8"))
    assert data["version"] == 1
    assert "Wrote" in result.output
    assert "Created" in result.output


def test_init_is_idempotent(tmp_path: Path) -> None:
    ctx = StackedContext.for_test(repo_root=tmp_path)
    runner = CliRunner()
    runner.invoke(cli, ["init"], obj=ctx)
    config_before = (tmp_path / ".stacked" / "config.toml").read_text(encoding="utf-8")

    result = runner.invoke(cli, ["init"], obj=ctx)

    assert result.exit_code == 0, result.output
    assert "Config already exists" in result.output
    assert "Stack file already exists" in result.output
    after = (tmp_path / ".stacked" / "config.toml").read_text(encoding="utf-8")
    assert after == config_before


def test_help_lists_commands() -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["-h"], obj=StackedContext.for_test())

    assert result.exit_code == 0
    for command in ("init", "status", "sync", "merge-down"):
        assert command in result.output
