from typing import Optional, Protocol

from .log import log_error


class ErrorReporter(Protocol):
    def report(self, error: BaseException, *, task_id: Optional[str] = None, attempt: Optional[int] = None) -> None:
        ...


class LoggingReporter:
    """Writes each reported error and its stack trace to the service log."""

    def report(self, error: BaseException, *, task_id: Optional[str] = None, attempt: Optional[int] = None) -> None:
        where = f"task {task_id}" if task_id else "request"
        if attempt is not None:
            where = f"{where} attempt {attempt}"
        log_error(f"Error during {where}: {type(error).__name__}: {error}", exc_info=error)
