from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from .runner import ProcessResult

LOG = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 5.0

Operation = Callable[[], ProcessResult]
Sleeper = Callable[[float], None]


class RetryOutcome(str, enum.Enum):
    OK = "ok"
    RETRIED = "retried"
    FATAL = "fatal"


@dataclass(frozen=True)
class RetryResult:
    outcome: RetryOutcome
    attempts: int
    result: Optional[ProcessResult] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome is not RetryOutcome.FATAL


def _failed(result: ProcessResult) -> bool:
    return not result.success


class RetryPolicy:
    """Run an operation, retrying once after a fixed delay.

    The delay is also applied after a successful attempt so consecutive
    operations are paced against the server. A failure on the second attempt
    is reported as ``RetryOutcome.FATAL``; deciding what that means is left to
    the caller.
    """

    MAX_ATTEMPTS = 2

    def __init__(self, delay: float = DEFAULT_DELAY_SECONDS, sleep: Sleeper = time.sleep) -> None:
        if delay < 0:
            raise ValueError("Retry delay cannot be negative")
        self._delay = delay
        self._sleep = sleep

    def execute(self, operation: Operation) -> RetryResult:
        retrying = Retrying(
            stop=stop_after_attempt(self.MAX_ATTEMPTS),
            wait=wait_fixed(self._delay),
            sleep=self._sleep,
            retry=retry_if_result(_failed) | retry_if_exception_type(Exception),
            before_sleep=self._log_retry,
            retry_error_callback=self._give_up,
        )
        attempts = 0

        def _attempt() -> ProcessResult:
            nonlocal attempts
            attempts += 1
            return operation()

        outcome: Union[ProcessResult, RetryResult] = retrying(_attempt)
        if isinstance(outcome, RetryResult):
            return outcome

        self._sleep(self._delay)
        kind = RetryOutcome.OK if attempts == 1 else RetryOutcome.RETRIED
        return RetryResult(outcome=kind, attempts=attempts, result=outcome)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        LOG.warning("Operation failed the first time: %s", _describe_failure(retry_state))
        LOG.warning("Sleeping for %s seconds before trying again", self._delay)

    @staticmethod
    def _give_up(retry_state: RetryCallState) -> RetryResult:
        result = None
        if retry_state.outcome is not None and not retry_state.outcome.failed:
            result = retry_state.outcome.result()
        return RetryResult(
            outcome=RetryOutcome.FATAL,
            attempts=retry_state.attempt_number,
            result=result,
            error=_describe_failure(retry_state),
        )


def _describe_failure(retry_state: RetryCallState) -> str:
    outcome = retry_state.outcome
    if outcome is None:
        return "no attempt made"
    if outcome.failed:
        return str(outcome.exception())
    return f"exit code {outcome.result().exit_code}"
