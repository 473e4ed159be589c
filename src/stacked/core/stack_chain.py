"""Dependency chain resolution for stacks.

Every stage is based on the stage before it. This module turns a stack and its
implementation sessions into one StageChainContext per stage, naming the branch
each stage lives on and the ref it is expected to be based on.

The resolver performs no git calls. Callers resolve the trunk ref once with
resolve_trunk_ref() and pass it in, so a single operation sees one consistent
chain.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from stacked.core.errors import InvalidStackStateError
from stacked.core.git.abc import Git
from stacked.core.stack_store.types import ImplementationSession, Stack, StageStatus

logger = logging.getLogger(__name__)

STAGE_DONE_REASON = "Stage is merged; sync is not required."
STAGE_UNSTARTED_REASON = "Stage branch is unavailable. Start this stage first."
PREVIOUS_STAGE_UNSTARTED_REASON = (
    "Previous stage branch is unavailable. Start the previous stage first."
)


@dataclass(frozen=True)
class StageChainContext:
    """Where one stage sits in the chain.

    ``base_ref`` is the trunk ref for the first live stage and the previous
    live stage's branch name otherwise. When the stage cannot take part in a
    sync, ``reason_if_unavailable`` says why.
    """

    index: int
    stage_id: str
    stage_title: str
    stage_status: StageStatus
    session: ImplementationSession | None = None
    branch_name: str | None = None
    base_ref: str | None = None
    reason_if_unavailable: str | None = None

    @property
    def is_available(self) -> bool:
        return (
            self.reason_if_unavailable is None
            and self.session is not None
            and self.branch_name is not None
            and self.base_ref is not None
        )


def resolve_trunk_ref(
    git: Git, repo_root: Path, *, remote: str, configured_trunk: str | None
) -> tuple[str, str]:
    """Resolve the trunk branch and the ref stages should be compared against.

    Returns:
        (trunk_branch, trunk_ref) where trunk_ref is ``<remote>/<trunk>`` when
        the remote-tracking ref exists and the local branch name otherwise

    Raises:
        InvalidStackStateError: If no trunk branch can be found
    """
    try:
        trunk_branch = git.detect_default_branch(
            repo_root, remote=remote, configured=configured_trunk
        )
    except RuntimeError as e:
        raise InvalidStackStateError(str(e)) from e

    remote_ref = f"{remote}/{trunk_branch}"
    if git.ref_exists(repo_root, remote_ref):
        return trunk_branch, remote_ref
    if git.ref_exists(repo_root, trunk_branch):
        return trunk_branch, trunk_branch

    msg = f"Git ref not found: {remote_ref}"
    raise InvalidStackStateError(msg)


def resolve_stage_chain(
    stack: Stack,
    sessions: list[ImplementationSession],
    trunk_ref: str,
) -> list[StageChainContext]:
    """Produce one StageChainContext per stage, in stage order.

    Merged (``done``) stages have been folded into trunk, so the next live
    stage is based on the nearest live predecessor, or on trunk when none
    remain.
    """
    sessions_by_stage_id = {session.stage_id: session for session in sessions}

    contexts: list[StageChainContext] = []
    # None once a live predecessor has no branch
    base_ref: str | None = trunk_ref

    for index, stage in enumerate(stack.stages):
        if stage.status == "done":
            contexts.append(
                StageChainContext(
                    index=index,
                    stage_id=stage.id,
                    stage_title=stage.title,
                    stage_status=stage.status,
                    reason_if_unavailable=STAGE_DONE_REASON,
                )
            )
            continue

        session = sessions_by_stage_id.get(stage.id)
        branch_name = session.branch_name if session is not None else None

        reason: str | None = None
        if base_ref is None:
            reason = PREVIOUS_STAGE_UNSTARTED_REASON
        elif branch_name is None:
            reason = STAGE_UNSTARTED_REASON

        contexts.append(
            StageChainContext(
                index=index,
                stage_id=stage.id,
                stage_title=stage.title,
                stage_status=stage.status,
                session=session,
                branch_name=branch_name,
                base_ref=base_ref,
                reason_if_unavailable=reason,
            )
        )
        base_ref = branch_name

    logger.debug(
        "Resolved chain for stack %s: %s",
        stack.id,
        [(context.branch_name, context.base_ref) for context in contexts],
    )
    return contexts
