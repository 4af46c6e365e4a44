"""
Queue Engine Error Taxonomy

Every failure the engine can report belongs to exactly one ErrorKind:

    VALIDATION    malformed input, rejected before storage is touched
    PRECONDITION  branch/ticket missing or branch closed; fix the input
    CONFLICT      expected business outcome (queue full, lost race)
    CONSISTENCY   a broken invariant; never corrected silently
    TRANSIENT     storage hiccup; the caller may retry
    INTERNAL      anything else

Inside a unit of work the engine raises QueueError subclasses so that the
transaction unwinds. The QueueEngine facade converts them into Outcome
values, so callers always receive a result they must inspect.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar


T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    PRECONDITION = "PRECONDITION"
    CONFLICT = "CONFLICT"
    CONSISTENCY = "CONSISTENCY"
    TRANSIENT = "TRANSIENT"
    INTERNAL = "INTERNAL"


class ErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    BRANCH_NOT_FOUND = "BRANCH_NOT_FOUND"
    BRANCH_NOT_OPERATIONAL = "BRANCH_NOT_OPERATIONAL"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    CAPACITY_INVARIANT_VIOLATION = "CAPACITY_INVARIANT_VIOLATION"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_KINDS: Dict[ErrorCode, ErrorKind] = {
    ErrorCode.INVALID_INPUT: ErrorKind.VALIDATION,
    ErrorCode.BRANCH_NOT_FOUND: ErrorKind.PRECONDITION,
    ErrorCode.BRANCH_NOT_OPERATIONAL: ErrorKind.PRECONDITION,
    ErrorCode.TICKET_NOT_FOUND: ErrorKind.PRECONDITION,
    ErrorCode.CAPACITY_EXCEEDED: ErrorKind.CONFLICT,
    ErrorCode.ILLEGAL_TRANSITION: ErrorKind.CONFLICT,
    ErrorCode.CAPACITY_INVARIANT_VIOLATION: ErrorKind.CONSISTENCY,
    ErrorCode.STORAGE_UNAVAILABLE: ErrorKind.TRANSIENT,
    ErrorCode.INTERNAL_ERROR: ErrorKind.INTERNAL,
}


@dataclass(frozen=True)
class EngineError:
    """Error value carried by a failed Outcome."""
    code: ErrorCode
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> ErrorKind:
        return ERROR_KINDS[self.code]

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT

    @property
    def is_fatal(self) -> bool:
        return self.kind in (ErrorKind.CONSISTENCY, ErrorKind.INTERNAL)


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of an engine operation: either a value or an EngineError."""
    value: Optional[T] = None
    error: Optional[EngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T = None) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: EngineError) -> "Outcome[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value, raising the error as a QueueError if failed."""
        if self.error is not None:
            raise QueueError.from_error(self.error)
        return self.value


# =============================================================================
# EXCEPTIONS (raised inside a unit of work only)
# =============================================================================

class QueueError(Exception):
    """Base class for engine failures that abort the current transaction."""
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_error(self) -> EngineError:
        return EngineError(code=self.code, message=self.message, details=self.details)

    @staticmethod
    def from_error(error: EngineError) -> "QueueError":
        exc_class = _EXCEPTIONS_BY_CODE.get(error.code, QueueError)
        exc = exc_class(error.message, **error.details)
        exc.code = error.code
        return exc


class InvalidInput(QueueError):
    code = ErrorCode.INVALID_INPUT


class BranchNotFound(QueueError):
    code = ErrorCode.BRANCH_NOT_FOUND


class BranchNotOperational(QueueError):
    code = ErrorCode.BRANCH_NOT_OPERATIONAL


class TicketNotFound(QueueError):
    code = ErrorCode.TICKET_NOT_FOUND


class CapacityExceeded(QueueError):
    code = ErrorCode.CAPACITY_EXCEEDED


class IllegalTransition(QueueError):
    code = ErrorCode.ILLEGAL_TRANSITION


class CapacityInvariantViolation(QueueError):
    code = ErrorCode.CAPACITY_INVARIANT_VIOLATION


_EXCEPTIONS_BY_CODE = {
    exc_class.code: exc_class
    for exc_class in (
        InvalidInput,
        BranchNotFound,
        BranchNotOperational,
        TicketNotFound,
        CapacityExceeded,
        IllegalTransition,
        CapacityInvariantViolation,
    )
}
