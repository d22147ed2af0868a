"""
Retry orchestration for capture tasks.

A task is replayed as a whole (acquire, prepare, capture) until it succeeds,
fails with an error that is not worth retrying, or runs out of attempts.
The decision is made on the Outcome each attempt returns, not on exceptions.
"""
from typing import Awaitable, Callable, Optional

from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_fixed, wait_none

from .config import MAX_RETRIES_WHEN_ERROR
from .errors import ExhaustedError, Outcome
from .log import log_warning
from .models import Task
from .reporting import ErrorReporter, LoggingReporter

TaskExecutor = Callable[[Task], Awaitable[Outcome]]


def _should_retry(outcome: Outcome) -> bool:
    return outcome.retryable


def _last_outcome(retry_state: RetryCallState) -> Outcome:
    return retry_state.outcome.result()


class RetryOrchestrator:
    def __init__(
        self,
        retries: int = MAX_RETRIES_WHEN_ERROR,
        delay_ms: int = 0,
        reporter: Optional[ErrorReporter] = None,
    ):
        self.retries = retries
        self.delay_ms = delay_ms
        self.reporter = reporter or LoggingReporter()

    @property
    def max_attempts(self) -> int:
        return 1 + self.retries

    async def run_with_retry(self, task: Task, execute: TaskExecutor):
        def report_attempt(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome.result()
            log_warning(f"[RETRY] Task {task.task_id} attempt {retry_state.attempt_number}/{self.max_attempts} failed ({outcome.kind.value})")
            self.reporter.report(outcome.error, task_id=task.task_id, attempt=retry_state.attempt_number)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.delay_ms / 1000.0) if self.delay_ms else wait_none(),
            retry=retry_if_result(_should_retry),
            after=report_attempt,
            retry_error_callback=_last_outcome,
        )
        outcome: Outcome = await retrying(execute, task)

        if outcome.ok:
            return outcome.value
        if outcome.retryable:
            raise ExhaustedError(self.max_attempts, outcome.error) from outcome.error
        raise outcome.error
