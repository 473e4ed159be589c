"""Per-stack single-flight guard for mutating operations."""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from stacked.core.errors import InvalidStackStateError


class StackOperationGuard:
    """Tracks which stacks have a mutating operation in flight.

    A second sync or merge-down for a stack that already has one in flight
    fails immediately instead of queueing behind it. A stack id is only
    tracked while an operation holds it.
    """

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._busy: set[str] = set()

    @property
    def busy_stack_ids(self) -> frozenset[str]:
        with self._registry_lock:
            return frozenset(self._busy)

    def is_busy(self, stack_id: str) -> bool:
        with self._registry_lock:
            return stack_id in self._busy

    @contextmanager
    def hold(self, stack_id: str, operation: str) -> Iterator[None]:
        """Mark ``stack_id`` busy for the duration of the block.

        Raises:
            InvalidStackStateError: If another operation holds the stack
        """
        with self._registry_lock:
            if stack_id in self._busy:
                msg = (
                    f"Another operation is already running for stack {stack_id}; "
                    f"cannot {operation}."
                )
                raise InvalidStackStateError(msg)
            self._busy.add(stack_id)
        try:
            yield
        finally:
            with self._registry_lock:
                self._busy.discard(stack_id)
