"""Application context with dependency injection."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from stacked.core.config import StackedConfig, load_config
from stacked.core.git.abc import Git
from stacked.core.git.real import RealGit
from stacked.core.github.abc import GitHub
from stacked.core.github.real import RealGitHub
from stacked.core.stack_lock import StackOperationGuard
from stacked.core.stack_store.abc import StackStore
from stacked.core.stack_store.json_store import JsonStackStore
from stacked.core.subprocess import run_subprocess_with_context
from stacked.core.time.abc import Time
from stacked.core.time.real import RealTime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StackedContext:
    """Immutable context holding all dependencies for stack operations.

    Created at CLI entry point and threaded through the engines.
    Frozen to prevent accidental modification at runtime.
    """

    git: Git
    github: GitHub
    store: StackStore
    time: Time
    repo_root: Path
    config: StackedConfig
    locks: StackOperationGuard = field(default_factory=StackOperationGuard)

    @staticmethod
    def for_test(
        git: Git | None = None,
        github: GitHub | None = None,
        store: StackStore | None = None,
        time: Time | None = None,
        repo_root: Path | None = None,
        config: StackedConfig | None = None,
        locks: StackOperationGuard | None = None,
    ) -> "StackedContext":
        """Create test context with optional pre-configured integration classes.

        Any unspecified dependency is replaced with an empty fake.

        Example:
            >>> git = FakeGit(refs={"origin/main": "abc123"})
            >>> store = FakeStackStore(stacks=[stack], sessions=sessions)
            >>> ctx = StackedContext.for_test(git=git, store=store)
        """
        from tests.fakes.time import FakeTime

        from stacked.core.git.fake import FakeGit
        from stacked.core.github.fake import FakeGitHub
        from stacked.core.stack_store.fake import FakeStackStore

        return StackedContext(
            git=git if git is not None else FakeGit(),
            github=github if github is not None else FakeGitHub(),
            store=store if store is not None else FakeStackStore(),
            time=time if time is not None else FakeTime(),
            repo_root=repo_root if repo_root is not None else Path("/test/repo"),
            config=config if config is not None else StackedConfig(),
            locks=locks if locks is not None else StackOperationGuard(),
        )


def discover_repo_root(cwd: Path) -> Path | None:
    """Return the top level of the git repository containing cwd, if any."""
    result = run_subprocess_with_context(
        ["git", "rev-parse", "--show-toplevel"],
        operation_context="discover repository root",
        cwd=cwd,
        check=False,
    )
    if result.returncode != 0:
        return None
    return Path(result.stdout.strip())


def create_context(repo_root: Path) -> StackedContext:
    """Create production context with real implementations.

    Called at CLI entry point once the repository root is known.

    Raises:
        ValueError: If .stacked/config.toml is malformed
    """
    config = load_config(repo_root)
    logger.debug("Loaded config for %s: %s", repo_root, config)

    return StackedContext(
        git=RealGit(
            inspect_timeout=config.inspect_timeout_seconds,
            mutation_timeout=config.mutation_timeout_seconds,
        ),
        github=RealGitHub(
            inspect_timeout=config.inspect_timeout_seconds,
            mutation_timeout=config.mutation_timeout_seconds,
        ),
        store=JsonStackStore(config.resolve_store_path(repo_root)),
        time=RealTime(),
        repo_root=repo_root,
        config=config,
    )
