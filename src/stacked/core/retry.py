"""Retry logic with exponential backoff for transient failures.

Only read-only GitHub lookups are retried. A mutating call that fails is never
replayed, since a partial success on the remote cannot be detected here.
"""

import logging
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

# Type variable for decorated function return type
T = TypeVar("T")


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    *,
    backoff_factor: float = 2.0,
    ctx: Any = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry function with exponential backoff for transient failures.

    Retries the decorated function up to max_attempts times with exponentially
    increasing delays between attempts. On the final attempt, the exception
    is re-raised to the caller.

    Supports two usage patterns:
    1. Function with ctx parameter: Decorator extracts ctx.time from first arg
    2. Closure function: Pass ctx explicitly to decorator

    Delay calculation: delay = base_delay * (backoff_factor ** (attempt - 1))
    Example with defaults: 1s, 2s before attempts 2 and 3

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        backoff_factor: Multiplier for exponential backoff (default: 2.0)
        ctx: Optional StackedContext for closure functions (default: None)

    Raises:
        RuntimeError: Re-raises the last failure after max_attempts exhausted
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            # Inline import: Avoid circular dependency with context module
            from stacked.core.context import StackedContext

            context: StackedContext
            if ctx is not None:
                context = ctx
            elif len(args) > 0 and isinstance(args[0], StackedContext):
                context = args[0]
            else:
                msg = (
                    f"Function {func.__name__} must either take StackedContext "
                    "as first parameter or decorator must receive ctx"
                )
                raise TypeError(msg)

            for attempt in range(max_attempts):
                if attempt > 0:
                    delay = base_delay * (backoff_factor ** (attempt - 1))
                    logger.info(
                        "Retrying %s after %.1fs (attempt %d/%d)",
                        func.__name__,
                        delay,
                        attempt + 1,
                        max_attempts,
                    )
                    context.time.sleep(delay)

                try:
                    return func(*args, **kwargs)
                except RuntimeError as e:
                    if attempt == max_attempts - 1:
                        raise
                    logger.warning("Operation failed: %s", e)

            msg = f"Function {func.__name__} called with max_attempts={max_attempts}"
            raise ValueError(msg)

        return wrapper

    return decorator
