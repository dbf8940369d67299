"""Tests for the whole-run retry policy."""
import pytest

from src.errors import AuthenticationError, NavigationTimeoutError, ParseError, ValidationError
from src.jobs.retry import RetryPolicy


class Flaky:
    """Fails with the given errors in order, then returns "done"."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.attempts = []

    async def __call__(self, attempt_number):
        self.attempts.append(attempt_number)
        if self.errors:
            raise self.errors.pop(0)
        return "done"


async def test_retryable_error_then_success():
    """A timeout on the first attempt is retried."""
    operation = Flaky(NavigationTimeoutError("form post", 10000))
    result = await RetryPolicy(max_attempts=2, wait_seconds=0).call(operation)
    assert result == "done"
    assert operation.attempts == [1, 2]


async def test_non_retryable_raised_immediately():
    """Validation errors are never retried."""
    operation = Flaky(ValidationError("bad"))
    with pytest.raises(ValidationError):
        await RetryPolicy(max_attempts=3, wait_seconds=0).call(operation)
    assert operation.attempts == [1]


async def test_last_error_reraised_after_max_attempts(caplog):
    """Once attempts run out the final error surfaces unchanged."""
    last = AuthenticationError("Error de autenticación (login?error=UP)")
    operation = Flaky(NavigationTimeoutError("results", 8000), last)
    with pytest.raises(AuthenticationError) as exc:
        await RetryPolicy(max_attempts=2, wait_seconds=0).call(operation)
    assert exc.value is last
    assert operation.attempts == [1, 2]
    assert "attempt 1/2 failed" in caplog.text


async def test_custom_predicate():
    """A caller-supplied predicate decides what is retried."""
    operation = Flaky(ParseError("tabla"), ParseError("tabla"))
    policy = RetryPolicy(max_attempts=3, is_retryable=lambda e: isinstance(e, ParseError), wait_seconds=0)
    assert await policy.call(operation) == "done"
    assert operation.attempts == [1, 2, 3]


async def test_single_attempt_policy():
    """max_attempts=1 means no retry at all."""
    operation = Flaky(NavigationTimeoutError("form post"))
    with pytest.raises(NavigationTimeoutError):
        await RetryPolicy(max_attempts=1, wait_seconds=0).call(operation)
    assert operation.attempts == [1]
