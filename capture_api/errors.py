from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NAVIGATION = "navigation"
    CAPTURE = "capture"
    EXECUTION = "execution"
    SHUTDOWN = "shutdown"
    EXHAUSTED = "exhausted"


RETRYABLE_KINDS = frozenset({ErrorKind.NAVIGATION, ErrorKind.CAPTURE, ErrorKind.EXECUTION})


class CaptureApiError(Exception):
    kind: ErrorKind = ErrorKind.EXECUTION

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class ValidationError(CaptureApiError):
    """Unsupported format or malformed options; never reaches the pool."""
    kind = ErrorKind.VALIDATION


class NavigationError(CaptureApiError):
    """Target unreachable, aborted by the network guard, or timed out."""
    kind = ErrorKind.NAVIGATION


class CaptureError(CaptureApiError):
    """The renderer failed while producing the output."""
    kind = ErrorKind.CAPTURE


class ExecutionError(CaptureApiError):
    """The pool or the rendering context itself failed."""
    kind = ErrorKind.EXECUTION


class ShutdownError(CaptureApiError):
    kind = ErrorKind.SHUTDOWN


class ExhaustedError(CaptureApiError):
    kind = ErrorKind.EXHAUSTED

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Task failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class Outcome:
    """Result of one lifecycle run: either a value or the error that ended it."""

    __slots__ = ("value", "error")

    def __init__(self, value: Any = None, error: Optional[CaptureApiError] = None):
        self.value = value
        self.error = error

    @classmethod
    def success(cls, value: Any) -> "Outcome":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CaptureApiError) -> "Outcome":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value

    def __repr__(self) -> str:
        if self.ok:
            return f"Outcome.success({type(self.value).__name__})"
        return f"Outcome.failure({self.kind.value}: {self.error})"
