import click

from stacked.cli.json_output import emit_json, stack_error_boundary
from stacked.cli.json_schemas import merge_down_response
from stacked.cli.output import user_output
from stacked.core.context import StackedContext
from stacked.core.errors import StackNotFoundError
from stacked.core.merge_down import merge_down_stack


@click.command("merge-down")
@click.argument("stack_id")
@click.option(
    "-f",
    "--force",
    is_flag=True,
    help="Skip confirmation prompt and proceed immediately.",
)
@click.option("--json", "as_json", is_flag=True, help="Output the result as JSON.")
@click.pass_obj
@stack_error_boundary
def merge_down_cmd(ctx: StackedContext, stack_id: str, *, force: bool, as_json: bool) -> None:
    """Squash-merge every stage of STACK_ID into trunk, bottom-up.

    Every stage must be approved at its current PR head. Each stage is then
    rebased onto trunk, force-pushed, retargeted to trunk and squash-merged,
    and its worktree and local branch are removed.

    Requirements:
    - Clean working directory (no uncommitted changes)
    - Every stage has a PR and an approval matching the PR head
    """
    if as_json and not force:
        raise click.UsageError("--json requires --force; merge-down cannot prompt in JSON mode.")

    stack = ctx.store.get_stack_by_id(stack_id)
    if stack is None:
        raise StackNotFoundError(stack_id)

    pending = [stage for stage in stack.stages if stage.status != "done"]
    if not force:
        user_output(f"Stages to merge from {click.style(stack.name, fg='cyan', bold=True)}:")
        for stage in pending:
            pr_part = (
                click.style(f"PR #{stage.pull_request.number}", fg="bright_black")
                if stage.pull_request is not None
                else click.style("no PR", fg="red")
            )
            user_output(f"  {stage.title} ({pr_part})")
        if not click.confirm(f"Merge down {len(pending)} stage(s)?", default=False, err=True):
            user_output("Merge-down cancelled.")
            return

    result = merge_down_stack(ctx, stack_id)

    if as_json:
        emit_json(merge_down_response(result))
        return

    for stage in result.stages:
        user_output(
            click.style("✓", fg="green")
            + f" Merged PR #{stage.pull_request_number} ({stage.stage_title})"
        )
    user_output(f"Merged {result.merged_stages} stage(s) into {result.default_branch}")
