"""Errors raised by the stack engines.

Every failure the sync and merge-down engines surface is a StackServiceError
carrying one of three codes, so callers can map failures without parsing
message text.
"""

from typing import Literal, TypeGuard

StackServiceErrorCode = Literal["not-found", "invalid-state", "command-failed"]


class StackServiceError(Exception):
    """Base error for stack operations."""

    def __init__(self, code: StackServiceErrorCode, message: str) -> None:
        self.code: StackServiceErrorCode = code
        self.message = message
        super().__init__(message)


class StackNotFoundError(StackServiceError):
    """Raised when a stack id does not exist in the store."""

    def __init__(self, stack_id: str) -> None:
        self.stack_id = stack_id
        super().__init__("not-found", f"Stack not found: {stack_id}")


class InvalidStackStateError(StackServiceError):
    """Raised when a precondition fails. Nothing has been mutated."""

    def __init__(self, message: str) -> None:
        super().__init__("invalid-state", message)


class CommandFailedError(StackServiceError):
    """Raised when a git or gh command fails.

    The message is ``"<prefix>: <detail>"`` where the prefix names the stage
    (and PR, where relevant) being processed.
    """

    def __init__(self, prefix: str, detail: str) -> None:
        self.prefix = prefix
        self.detail = detail
        super().__init__("command-failed", f"{prefix}: {detail}")


def command_failure_detail(error: RuntimeError) -> str:
    """Pick the most useful line out of a gateway RuntimeError.

    Prefers the command's stderr; falls back to the whole message.
    """
    text = str(error).strip()
    for line in text.splitlines():
        if line.startswith("stderr: "):
            return line.removeprefix("stderr: ").strip()
    return text or "unknown command failure"


def is_stack_service_error(error: object) -> TypeGuard[StackServiceError]:
    return isinstance(error, StackServiceError)
