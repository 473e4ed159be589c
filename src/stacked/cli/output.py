"""Output routing for CLI commands.

Human-readable messages go to stderr; machine-readable data (JSON) goes to
stdout so it can be piped.
"""

import click


def user_output(message: str = "") -> None:
    click.echo(message, err=True)


def machine_output(message: str) -> None:
    click.echo(message)
