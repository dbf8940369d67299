"""Whole-run retry policy around the orchestrator."""
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from src.errors import is_retryable_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Re-run a whole operation on retryable ScraperErrors. Each attempt should
    take a fresh session. Non-retryable errors and the last failure are
    re-raised unchanged.
    """

    max_attempts: int = 2
    is_retryable: Callable[[BaseException], bool] = field(default=is_retryable_error)
    wait_seconds: float = 1.0

    def _log_retry(self, state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        logger.warning(f"attempt {state.attempt_number}/{self.max_attempts} failed: {type(error).__name__}: {error}")

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(max(1, self.max_attempts)),
            wait=wait_fixed(self.wait_seconds),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=self._log_retry,
            reraise=True,
        )

    async def call(self, operation: Callable[[int], Awaitable[T]]) -> T:
        """Call operation(attempt_number) until it succeeds or the policy gives up."""
        async for attempt in self.retrying():
            with attempt:
                return await operation(attempt.retry_state.attempt_number)
        raise RuntimeError("retry loop exited without a result")
