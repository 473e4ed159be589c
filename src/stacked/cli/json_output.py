"""JSON output utilities and the error boundary shared by CLI commands."""

import json
from collections.abc import Callable
from functools import wraps
from typing import Any

import click
from pydantic import BaseModel, ConfigDict, Field

from stacked.cli.output import machine_output, user_output
from stacked.core.errors import StackServiceError


class ErrorResponse(BaseModel):
    """Pydantic model for error JSON responses.

    Attributes:
        error: Error message
        error_type: Error class name (e.g., "CommandFailedError")
        code: Stack error code ("not-found", "invalid-state", "command-failed"),
            or None for errors outside the stack taxonomy
        exit_code: Exit code for the process
    """

    model_config = ConfigDict(strict=True)

    error: str
    error_type: str
    code: str | None
    exit_code: int = Field(default=1, ge=0, le=255)


def emit_json(model: BaseModel) -> None:
    """Output a validated response model to stdout for machine consumption."""
    machine_output(json.dumps(model.model_dump(mode="json"), indent=2))


def emit_error(error: Exception, *, as_json: bool) -> None:
    """Report an error the way the caller asked for, then exit with code 1.

    Raises:
        SystemExit: Always
    """
    code = error.code if isinstance(error, StackServiceError) else None
    if as_json:
        emit_json(
            ErrorResponse(
                error=str(error),
                error_type=type(error).__name__,
                code=code,
                exit_code=1,
            )
        )
    else:
        user_output(click.style("Error: ", fg="red") + str(error))
    raise SystemExit(1)


def stack_error_boundary(func: Callable) -> Callable:
    """Decorator turning stack errors into a styled message or JSON error.

    Inspects the function's ``as_json`` keyword. StackServiceError (and the
    ValueError raised for a malformed stack file) never escape as tracebacks.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (StackServiceError, ValueError) as e:
            emit_error(e, as_json=bool(kwargs.get("as_json", False)))

    return wrapper
