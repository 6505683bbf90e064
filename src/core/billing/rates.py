"""
Rate resolution at booking time.

A lesson's hourly rate comes from exactly one place: the lesson type the
coach picked, a custom rate typed in for a one-off lesson, or (on the
single-client path) the client's default rate. Whatever is resolved
here is copied onto the lesson and never looked up again.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Union
from uuid import UUID

from .errors import InvalidRate, TypeNotFound
from .models import Client, LessonType
from .store import LessonStore, store_read

logger = logging.getLogger(__name__)

DEFAULT_MAX_CUSTOM_RATE = Decimal("999")


def _as_decimal(value: Union[Decimal, int, float, str, None]) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        # str() first so 0.1 stays 0.1 rather than its binary expansion
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return rate if rate.is_finite() else None


class RateResolver:
    """Determines the hourly rate to snapshot onto a new lesson."""

    def __init__(
        self,
        store: LessonStore,
        max_custom_rate: Decimal = DEFAULT_MAX_CUSTOM_RATE,
    ) -> None:
        self._store = store
        self._max_custom_rate = max_custom_rate

    def resolve(
        self,
        coach_id: UUID,
        lesson_type_id: Optional[UUID] = None,
        custom_rate: Union[Decimal, int, float, str, None] = None,
    ) -> tuple[Decimal, Optional[LessonType]]:
        """
        Return the hourly rate and the lesson type it came from (if any).

        A lesson type, when given, decides the rate and any custom rate is
        ignored. It must belong to the coach, be active, and carry a
        positive rate. Without a type, the custom rate must satisfy
        0 < rate <= max_custom_rate.
        """
        if lesson_type_id is not None:
            with store_read("get_lesson_type", lesson_type_id=str(lesson_type_id)):
                lesson_type = self._store.get_lesson_type(coach_id, lesson_type_id)
            if lesson_type is None or not lesson_type.is_active:
                logger.info(
                    "Lesson type not available for booking",
                    extra={"coach_id": str(coach_id), "lesson_type_id": str(lesson_type_id)},
                )
                raise TypeNotFound()
            if custom_rate is not None:
                logger.debug(
                    "Ignoring custom rate in favour of lesson type",
                    extra={"lesson_type_id": str(lesson_type_id)},
                )
            rate = _as_decimal(lesson_type.hourly_rate)
            if rate is None or rate <= 0:
                logger.warning(
                    "Lesson type has no usable hourly rate",
                    extra={
                        "lesson_type_id": str(lesson_type_id),
                        "rate": str(lesson_type.hourly_rate),
                    },
                )
                raise InvalidRate()
            return rate, lesson_type

        return self.validate_custom_rate(custom_rate), None

    def validate_custom_rate(self, custom_rate) -> Decimal:
        rate = _as_decimal(custom_rate)
        if rate is None or rate <= 0 or rate > self._max_custom_rate:
            raise InvalidRate()
        return rate

    @staticmethod
    def resolve_client_rate(client: Client) -> Decimal:
        """Default rate for the single-client path."""
        rate = _as_decimal(client.hourly_rate)
        if rate is None or rate <= 0:
            raise InvalidRate("Hourly rate must be greater than 0.")
        return rate
