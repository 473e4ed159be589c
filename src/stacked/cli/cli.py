import logging
import os
from pathlib import Path

import click

from stacked.cli.commands.init import init_cmd
from stacked.cli.commands.merge_down import merge_down_cmd
from stacked.cli.commands.status import status_cmd
from stacked.cli.commands.sync import sync_cmd
from stacked.cli.output import user_output
from stacked.core.context import create_context, discover_repo_root

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

# Enable debug logging if STACKED_DEBUG environment variable is set
if os.getenv("STACKED_DEBUG"):
    logging.basicConfig(level=logging.DEBUG, format="[DEBUG %(name)s:%(lineno)d] %(message)s")


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="stacked")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Keep stacks of dependent branches in sync and merge them down into trunk."""
    # Only create context if not already provided (e.g., by tests)
    if ctx.obj is not None:
        return

    repo_root = discover_repo_root(Path.cwd())
    if repo_root is None:
        user_output(click.style("Error: ", fg="red") + "Not inside a git repository.")
        raise SystemExit(1)

    try:
        ctx.obj = create_context(repo_root)
    except ValueError as e:
        user_output(click.style("Error: ", fg="red") + str(e))
        raise SystemExit(1) from e


cli.add_command(init_cmd)
cli.add_command(status_cmd)
cli.add_command(sync_cmd)
cli.add_command(merge_down_cmd)


def main() -> None:
    """CLI entry point used by the `stacked` console script."""
    cli()
