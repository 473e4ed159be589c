"""Tests for retry decorator with exponential backoff."""

import pytest

from stacked.core.context import StackedContext
from stacked.core.retry import retry_with_backoff
from tests.fakes.time import FakeTime


def test_retry_succeeds_on_first_attempt() -> None:
    time = FakeTime()
    ctx = StackedContext.for_test(time=time)
    call_count = 0

    @retry_with_backoff(max_attempts=3, base_delay=0.5, ctx=ctx)
    def successful_function() -> str:
        nonlocal call_count
        call_count += 1
        return "success"

    assert successful_function() == "success"
    assert call_count == 1
    assert time.sleep_calls == []


def test_retry_sleeps_with_exponential_backoff() -> None:
    time = FakeTime()
    ctx = StackedContext.for_test(time=time)
    call_count = 0

    @retry_with_backoff(max_attempts=4, base_delay=0.5, ctx=ctx)
    def fails_three_times() -> str:
        nonlocal call_count
        call_count += 1
        if call_count < 4:
            raise RuntimeError("HTTP 502")
        return "success"

    assert fails_three_times() == "success"
    assert time.sleep_calls == [0.5, 1.0, 2.0]


def test_retry_reraises_last_failure() -> None:
    ctx = StackedContext.for_test()
    call_count = 0

    @retry_with_backoff(max_attempts=3, base_delay=1.0, ctx=ctx)
    def always_fails() -> str:
        nonlocal call_count
        call_count += 1
        raise RuntimeError(f"failure {call_count}")

    with pytest.raises(RuntimeError, match="failure 3"):
        always_fails()

    assert call_count == 3


def test_retry_does_not_retry_other_exceptions() -> None:
    ctx = StackedContext.for_test()
    call_count = 0

    @retry_with_backoff(max_attempts=3, base_delay=1.0, ctx=ctx)
    def raises_value_error() -> str:
        nonlocal call_count
        call_count += 1
        raise ValueError("not transient")

    with pytest.raises(ValueError):
        raises_value_error()

    assert call_count == 1


def test_retry_takes_context_from_first_argument() -> None:
    time = FakeTime()
    ctx = StackedContext.for_test(time=time)
    attempts: list[int] = []

    @retry_with_backoff(max_attempts=2, base_delay=3.0)
    def lookup(context: StackedContext, pr_number: int) -> int:
        attempts.append(pr_number)
        if len(attempts) == 1:
            raise RuntimeError("timeout")
        return pr_number

    assert lookup(ctx, 42) == 42
    assert time.sleep_calls == [3.0]


def test_retry_without_context_is_type_error() -> None:
    @retry_with_backoff()
    def orphan() -> None:
        return None

    with pytest.raises(TypeError, match="must either take StackedContext"):
        orphan()
