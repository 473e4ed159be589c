"""Abstract base class for stack persistence."""

from abc import ABC, abstractmethod

from stacked.core.stack_store.types import (
    ImplementationSession,
    Stack,
    StackStatus,
    StageStatus,
)


class StackStore(ABC):
    """Abstract interface for stack and session persistence.

    Implementations include:
    - FakeStackStore: In-memory for testing
    - JsonStackStore: JSON document on disk for production
    """

    @abstractmethod
    def get_stack_by_id(self, stack_id: str) -> Stack | None:
        """Get a stack by ID.

        Returns:
            The Stack if found, None otherwise
        """
        ...

    @abstractmethod
    def get_implementation_sessions_by_stack_id(
        self, stack_id: str
    ) -> list[ImplementationSession]:
        """List the implementation sessions bound to a stack's stages."""
        ...

    @abstractmethod
    def set_stack_stage_status(self, stack_id: str, stage_id: str, status: StageStatus) -> None:
        """Persist a new status for one stage.

        Raises:
            ValueError: If the stack or stage does not exist
        """
        ...

    @abstractmethod
    def set_stack_status(self, stack_id: str, status: StackStatus) -> None:
        """Persist a new status for a stack.

        Raises:
            ValueError: If the stack does not exist
        """
        ...

    @abstractmethod
    def remove_implementation_session_by_stack_and_stage(
        self, stack_id: str, stage_id: str
    ) -> bool:
        """Delete the session bound to a stage.

        Returns:
            True if a session was removed, False if none existed
        """
        ...
