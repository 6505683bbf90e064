"""
Lesson billing: rate resolution, booking, and lesson lifecycle.

Contains the domain models, the error taxonomy, and the store
interfaces the booking logic depends on.
"""

from .booking import (
    BookingEngine,
    BookingLimits,
    BookingRequest,
    BookingResult,
    SingleClientBookingRequest,
    compute_lesson_total,
    split_evenly,
)
from .errors import BillingError, ErrorKind, OperationResult, StoreError
from .lifecycle import LessonLifecycle
from .models import (
    Client,
    Invoice,
    Lesson,
    LessonRecord,
    LessonStatus,
    LessonType,
    OwedEntry,
    PaymentStatus,
)
from .rates import RateResolver
from .store import ChangeNotifier, IdentityProvider, LessonStore

__all__ = [
    "BillingError",
    "BookingEngine",
    "BookingLimits",
    "BookingRequest",
    "BookingResult",
    "ChangeNotifier",
    "Client",
    "ErrorKind",
    "IdentityProvider",
    "Invoice",
    "Lesson",
    "LessonLifecycle",
    "LessonRecord",
    "LessonStatus",
    "LessonStore",
    "LessonType",
    "OperationResult",
    "OwedEntry",
    "PaymentStatus",
    "RateResolver",
    "SingleClientBookingRequest",
    "StoreError",
    "compute_lesson_total",
    "split_evenly",
]
