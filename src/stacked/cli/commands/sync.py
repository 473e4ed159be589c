import click

from stacked.cli.json_output import emit_json, stack_error_boundary
from stacked.cli.json_schemas import sync_response
from stacked.cli.output import user_output
from stacked.core.context import StackedContext
from stacked.core.stack_sync import sync_stack


@click.command("sync")
@click.argument("stack_id")
@click.option("--json", "as_json", is_flag=True, help="Output the result as JSON.")
@click.pass_obj
@stack_error_boundary
def sync_cmd(ctx: StackedContext, stack_id: str, *, as_json: bool) -> None:
    """Rebase every out-of-date stage of STACK_ID onto its base and force-push it.

    Stops at the first failing stage. Rebases that conflict are aborted, so
    no worktree is left mid-rebase. Safe to re-run.
    """
    result = sync_stack(ctx, stack_id)

    if as_json:
        emit_json(sync_response(result))
        return

    for stage in result.stages:
        if stage.status == "rebased":
            user_output(
                click.style("✓", fg="green")
                + f" Rebased {stage.stage_title} "
                + click.style(f"[{stage.branch_name}]", fg="yellow")
                + f" onto {stage.base_ref}"
            )
        else:
            user_output(click.style(f"- Skipped {stage.stage_title}: {stage.reason}", dim=True))

    user_output(
        f"Synced {result.total_stages} stage(s): "
        f"{result.rebased_stages} rebased, {result.skipped_stages} skipped"
    )
