import click

from stacked.cli.output import user_output
from stacked.core.config import config_path_for, save_config
from stacked.core.context import StackedContext
from stacked.core.stack_store.json_store import JsonStackStore


@click.command("init")
@click.pass_obj
def init_cmd(ctx: StackedContext) -> None:
    """Create .stacked/config.toml and an empty stack file.

    Existing files are left untouched, so running init twice is safe.
    """
    cfg_path = config_path_for(ctx.repo_root)
    if cfg_path.exists():
        user_output(f"Config already exists: {cfg_path}")
    else:
        save_config(ctx.repo_root, ctx.config)
        user_output(click.style("✓", fg="green") + f" Wrote {cfg_path}")

    store = JsonStackStore(ctx.config.resolve_store_path(ctx.repo_root))
    if store.initialize():
        user_output(click.style("✓", fg="green") + f" Created {store.path}")
    else:
        user_output(f"Stack file already exists: {store.path}")
