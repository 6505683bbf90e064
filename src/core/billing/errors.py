"""
Error taxonomy for billing operations.

Exceptions are raised inside the core and caught at the service
boundary, where they become structured results. Callers of the public
operations get a `success` flag and a message, never a traceback.

Ownership failures are reported as "not found" so a caller cannot probe
for records that belong to another coach.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Optional, TypeVar


T = TypeVar("T")


class ErrorKind(Enum):
    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"
    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"
    PERSISTENCE_FAILED = "persistence_failed"


class Messages:
    """User-facing messages."""
    NOT_LOGGED_IN = "You must be logged in to perform this action."
    INVALID_TIME_RANGE = "End time must be after start time."
    INVALID_DURATION = "Lesson duration must be between {min} minutes and {max} hours."
    INVALID_RATE = "Please enter a valid hourly rate."
    CLIENT_NOT_FOUND = "Client not found."
    TYPE_NOT_FOUND = "Lesson type not found or inactive."
    LESSON_NOT_FOUND = "Lesson not found."
    ENTRY_NOT_FOUND = "Participant not found for this lesson."
    NO_PARTICIPANTS = "Please select at least one client for this lesson."
    LESSON_CREATE_FAILED = "Failed to create lesson."
    PARTICIPANTS_CREATE_FAILED = "Lesson created, but failed to add lesson participants."
    INVOICE_CREATE_FAILED = "Lesson created, but failed to create invoice."
    UPDATE_FAILED = "Failed to update lesson."
    FETCH_FAILED = "Failed to fetch financial data."
    LOAD_FAILED = "Failed to load lesson data. Please try again."
    ALREADY_CANCELLED = "This lesson has already been cancelled."
    NOT_SCHEDULED = "Only scheduled lessons can be confirmed."
    FUTURE_LESSON = "Cannot confirm a lesson that has not ended yet."
    UNEXPECTED = "An unexpected error occurred. Please try again."

    LESSON_CREATED = "Lesson booked successfully!"
    LESSON_CONFIRMED = "Lesson confirmed successfully!"
    LESSON_COMPLETED = "Lesson marked as completed!"
    LESSON_CANCELLED = "Lesson cancelled successfully!"
    LESSON_NO_SHOW = "Lesson marked as no-show."
    MARKED_PAID = "Lesson marked as paid."
    MARKED_UNPAID = "Payment reverted to pending."


class BillingError(Exception):
    """Base class for every failure the billing core reports."""
    kind: ErrorKind = ErrorKind.VALIDATION_FAILED

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(BillingError):
    kind = ErrorKind.UNAUTHENTICATED

    def __init__(self, message: str = Messages.NOT_LOGGED_IN) -> None:
        super().__init__(message)


class ValidationFailed(BillingError):
    kind = ErrorKind.VALIDATION_FAILED


class InvalidTimeRange(ValidationFailed):
    def __init__(self, message: str = Messages.INVALID_TIME_RANGE) -> None:
        super().__init__(message)


class InvalidDuration(ValidationFailed):
    pass


class InvalidRate(ValidationFailed):
    def __init__(self, message: str = Messages.INVALID_RATE) -> None:
        super().__init__(message)


class InvalidLifecycleTransition(ValidationFailed):
    pass


class NotFound(BillingError):
    kind = ErrorKind.NOT_FOUND


class ClientNotFound(NotFound):
    def __init__(self, message: str = Messages.CLIENT_NOT_FOUND) -> None:
        super().__init__(message)


class TypeNotFound(NotFound):
    def __init__(self, message: str = Messages.TYPE_NOT_FOUND) -> None:
        super().__init__(message)


class LessonNotFound(NotFound):
    def __init__(self, message: str = Messages.LESSON_NOT_FOUND) -> None:
        super().__init__(message)


class EntryNotFound(NotFound):
    def __init__(self, message: str = Messages.ENTRY_NOT_FOUND) -> None:
        super().__init__(message)


class PersistenceFailed(BillingError):
    """
    The store rejected a write.

    Booking writes are not rolled back: if the lesson row made it in but
    its entries or invoice did not, the flags say so and the caller can
    repair the lesson.
    """
    kind = ErrorKind.PERSISTENCE_FAILED

    def __init__(
        self,
        message: str,
        lesson_created: bool = False,
        entries_created: bool = False,
        invoice_created: bool = False,
        lesson=None,
    ) -> None:
        super().__init__(message)
        self.lesson = lesson
        self.lesson_created = lesson_created
        self.entries_created = entries_created
        self.invoice_created = invoice_created


class StoreError(Exception):
    """Raised by store implementations when the backend fails."""
    pass


@dataclass
class OperationResult(Generic[T]):
    """Structured outcome of a public operation."""
    success: bool
    message: str = ""
    error: Optional[ErrorKind] = None
    data: Optional[T] = None
    details: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Optional[T] = None, message: str = "") -> "OperationResult[T]":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, exc: BillingError) -> "OperationResult[T]":
        return cls(success=False, message=exc.message, error=exc.kind)
