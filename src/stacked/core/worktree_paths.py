"""Resolution of stored worktree path keys."""

from pathlib import Path


def resolve_worktree_absolute_path(repo_root: Path, path_key: str) -> Path:
    """Turn a stored worktree path key into an absolute path.

    Absolute keys are returned unchanged; relative keys are resolved against
    the repository root.
    """
    path = Path(path_key)
    if path.is_absolute():
        return path
    return repo_root / path
