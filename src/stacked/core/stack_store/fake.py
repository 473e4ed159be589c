"""Fake in-memory stack store for testing."""

from dataclasses import replace

from stacked.core.stack_store.abc import StackStore
from stacked.core.stack_store.types import (
    ImplementationSession,
    Stack,
    StackStatus,
    StageStatus,
)


class FakeStackStore(StackStore):
    """In-memory fake implementation for testing.

    This class has NO public setup methods. All state is provided via constructor
    and mutations are tracked for test assertions.
    """

    def __init__(
        self,
        *,
        stacks: list[Stack] | None = None,
        sessions: list[ImplementationSession] | None = None,
    ) -> None:
        """Create FakeStackStore.

        Args:
            stacks: Initial stacks
            sessions: Initial implementation sessions
        """
        self._stacks: dict[str, Stack] = {stack.id: stack for stack in stacks or []}
        self._sessions: list[ImplementationSession] = list(sessions or [])
        self._stage_status_updates: list[tuple[str, str, StageStatus]] = []
        self._stack_status_updates: list[tuple[str, StackStatus]] = []
        self._removed_sessions: list[tuple[str, str]] = []

    @property
    def stage_status_updates(self) -> list[tuple[str, str, StageStatus]]:
        """List of (stack_id, stage_id, status) writes, in order."""
        return self._stage_status_updates

    @property
    def stack_status_updates(self) -> list[tuple[str, StackStatus]]:
        """List of (stack_id, status) writes, in order."""
        return self._stack_status_updates

    @property
    def removed_sessions(self) -> list[tuple[str, str]]:
        """List of (stack_id, stage_id) pairs whose session was removed."""
        return self._removed_sessions

    @property
    def sessions(self) -> list[ImplementationSession]:
        """Current sessions for test assertions."""
        return list(self._sessions)

    def get_stack_by_id(self, stack_id: str) -> Stack | None:
        return self._stacks.get(stack_id)

    def get_implementation_sessions_by_stack_id(
        self, stack_id: str
    ) -> list[ImplementationSession]:
        return [session for session in self._sessions if session.stack_id == stack_id]

    def set_stack_stage_status(self, stack_id: str, stage_id: str, status: StageStatus) -> None:
        stack = self._stacks.get(stack_id)
        if stack is None:
            msg = f"Stack not found: {stack_id}"
            raise ValueError(msg)
        if not any(stage.id == stage_id for stage in stack.stages):
            msg = f"Stage {stage_id} not found in stack {stack_id}"
            raise ValueError(msg)

        stages = tuple(
            replace(stage, status=status) if stage.id == stage_id else stage
            for stage in stack.stages
        )
        self._stacks[stack_id] = replace(stack, stages=stages)
        self._stage_status_updates.append((stack_id, stage_id, status))

    def set_stack_status(self, stack_id: str, status: StackStatus) -> None:
        stack = self._stacks.get(stack_id)
        if stack is None:
            msg = f"Stack not found: {stack_id}"
            raise ValueError(msg)
        self._stacks[stack_id] = replace(stack, status=status)
        self._stack_status_updates.append((stack_id, status))

    def remove_implementation_session_by_stack_and_stage(
        self, stack_id: str, stage_id: str
    ) -> bool:
        remaining = [
            session
            for session in self._sessions
            if not (session.stack_id == stack_id and session.stage_id == stage_id)
        ]
        if len(remaining) == len(self._sessions):
            return False
        self._sessions = remaining
        self._removed_sessions.append((stack_id, stage_id))
        return True
