import click

from stacked.cli.json_output import emit_json, stack_error_boundary
from stacked.cli.json_schemas import status_response
from stacked.cli.output import user_output
from stacked.core.context import StackedContext
from stacked.core.errors import StackNotFoundError
from stacked.core.stack_store.types import to_reporting_status
from stacked.core.stack_sync import StageSyncMetadata, get_stage_sync_by_id


def _format_drift(metadata: StageSyncMetadata) -> str:
    if metadata.reason_if_unavailable is not None:
        return click.style(metadata.reason_if_unavailable, fg="bright_black")
    if metadata.is_out_of_sync:
        return click.style(f"{metadata.behind_by} behind {metadata.base_ref}", fg="yellow")
    return click.style("in sync", fg="green")


@click.command("status")
@click.argument("stack_id")
@click.option("--json", "as_json", is_flag=True, help="Output the drift report as JSON.")
@click.pass_obj
@stack_error_boundary
def status_cmd(ctx: StackedContext, stack_id: str, *, as_json: bool) -> None:
    """Show how far each stage of STACK_ID has drifted from its base.

    Read-only: nothing is fetched, rebased or pushed.
    """
    stack = ctx.store.get_stack_by_id(stack_id)
    if stack is None:
        raise StackNotFoundError(stack_id)

    report = get_stage_sync_by_id(ctx, stack)

    if as_json:
        emit_json(status_response(stack, report))
        return

    user_output(f"{click.style(stack.name, fg='cyan', bold=True)} ({stack.type}, {stack.status})")
    for index, stage in enumerate(stack.stages, start=1):
        metadata = report[stage.id]
        label = stage.title
        if metadata.branch_name:
            label += " " + click.style(f"[{metadata.branch_name}]", fg="yellow")
        user_output(
            f"  {index}. {label} "
            f"({to_reporting_status(stage.status)}) - {_format_drift(metadata)}"
        )
