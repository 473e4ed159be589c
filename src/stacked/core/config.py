import tomllib
from dataclasses import dataclass
from pathlib import Path

import tomlkit

CONFIG_DIR_NAME = ".stacked"
CONFIG_FILE_NAME = "config.toml"


@dataclass(frozen=True)
class StackedConfig:
    """In-memory representation of `.stacked/config.toml`."""

    remote: str = "origin"
    trunk_branch: str | None = None
    store_path: str = f"{CONFIG_DIR_NAME}/stacks.json"
    inspect_timeout_seconds: float = 8.0
    mutation_timeout_seconds: float = 120.0

    def resolve_store_path(self, repo_root: Path) -> Path:
        path = Path(self.store_path)
        if path.is_absolute():
            return path
        return repo_root / path


def config_path_for(repo_root: Path) -> Path:
    return repo_root / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def _read_str(data: dict, key: str, default: str | None, cfg_path: Path) -> str | None:
    value = data.get(key, default)
    if value is None or isinstance(value, str):
        return value
    msg = f"Invalid value for '{key}' in {cfg_path}: expected a string, got {value!r}"
    raise ValueError(msg)


def _read_timeout(data: dict, key: str, default: float, cfg_path: Path) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
        msg = f"Invalid value for '{key}' in {cfg_path}: expected a positive number, got {value!r}"
        raise ValueError(msg)
    return float(value)


def load_config(repo_root: Path) -> StackedConfig:
    """Load .stacked/config.toml if present; otherwise return defaults.

    Example config:
      remote = "origin"
      trunk_branch = "main"
      store_path = ".stacked/stacks.json"

      [timeouts]
      inspect_seconds = 8
      mutation_seconds = 120
    """
    cfg_path = config_path_for(repo_root)
    if not cfg_path.exists():
        return StackedConfig()

    try:
        data = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {cfg_path}: {e}"
        raise ValueError(msg) from e

    defaults = StackedConfig()
    timeouts = data.get("timeouts", {})
    if not isinstance(timeouts, dict):
        msg = f"Invalid [timeouts] section in {cfg_path}: expected a table"
        raise ValueError(msg)

    remote = _read_str(data, "remote", defaults.remote, cfg_path)
    store_path = _read_str(data, "store_path", defaults.store_path, cfg_path)
    if not remote or not store_path:
        msg = f"'remote' and 'store_path' in {cfg_path} must not be empty"
        raise ValueError(msg)

    return StackedConfig(
        remote=remote,
        trunk_branch=_read_str(data, "trunk_branch", None, cfg_path),
        store_path=store_path,
        inspect_timeout_seconds=_read_timeout(
            timeouts, "inspect_seconds", defaults.inspect_timeout_seconds, cfg_path
        ),
        mutation_timeout_seconds=_read_timeout(
            timeouts, "mutation_seconds", defaults.mutation_timeout_seconds, cfg_path
        ),
    )


def save_config(repo_root: Path, config: StackedConfig) -> Path:
    """Save StackedConfig to .stacked/config.toml.

    Creates the config directory if it doesn't exist.
    Uses tomlkit to preserve TOML formatting and comments.
    """
    cfg_path = config_path_for(repo_root)
    cfg_path.parent.mkdir(parents=True, exist_ok=True)

    doc = tomlkit.document()
    doc["remote"] = config.remote
    if config.trunk_branch is not None:
        doc["trunk_branch"] = config.trunk_branch
    doc["store_path"] = config.store_path

    timeouts = tomlkit.table()
    timeouts["inspect_seconds"] = config.inspect_timeout_seconds
    timeouts["mutation_seconds"] = config.mutation_timeout_seconds
    doc["timeouts"] = timeouts

    cfg_path.write_text(tomlkit.dumps(doc), encoding="utf-8")
    return cfg_path
