"""
Lesson lifecycle transitions and participant payments.

Lessons are never deleted. They move Scheduled -> Completed / No Show /
Cancelled, and each participant's owed-entry moves between Pending and
Paid. None of these touch `rate_at_booking` or `amount_owed`.
"""

import logging
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from .booking import notify_changed, require_coach
from .errors import (
    BillingError,
    EntryNotFound,
    InvalidLifecycleTransition,
    LessonNotFound,
    Messages,
    OperationResult,
    PersistenceFailed,
)
from .models import Lesson, LessonStatus, OwedEntry, as_utc, utcnow
from .store import ChangeNotifier, IdentityProvider, LessonStore, store_read

logger = logging.getLogger(__name__)

LESSON_VIEWS = ["lessons", "calendar", "dashboard", "outstanding-lessons"]
PAYMENT_VIEWS = ["outstanding-lessons", "clients", "dashboard"]


class LessonLifecycle:
    """Status changes on lessons owned by the calling coach."""

    def __init__(
        self,
        store: LessonStore,
        identity: IdentityProvider,
        notifier: Optional[ChangeNotifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._identity = identity
        self._notifier = notifier
        self._clock = clock

    def confirm_lesson(self, lesson_id: UUID) -> OperationResult[Lesson]:
        """Confirm a scheduled lesson that has already ended."""
        def transition(lesson: Lesson) -> None:
            if lesson.status is not LessonStatus.SCHEDULED:
                raise InvalidLifecycleTransition(Messages.NOT_SCHEDULED)
            if as_utc(lesson.end_time) > self._clock():
                raise InvalidLifecycleTransition(Messages.FUTURE_LESSON)
            lesson.status = LessonStatus.COMPLETED

        return self._apply(lesson_id, transition, Messages.LESSON_CONFIRMED)

    def complete_lesson(self, lesson_id: UUID) -> OperationResult[Lesson]:
        def transition(lesson: Lesson) -> None:
            if lesson.status is LessonStatus.CANCELLED:
                raise InvalidLifecycleTransition(Messages.ALREADY_CANCELLED)
            lesson.status = LessonStatus.COMPLETED

        return self._apply(lesson_id, transition, Messages.LESSON_COMPLETED)

    def mark_no_show(self, lesson_id: UUID) -> OperationResult[Lesson]:
        def transition(lesson: Lesson) -> None:
            if lesson.status is not LessonStatus.SCHEDULED:
                raise InvalidLifecycleTransition(Messages.NOT_SCHEDULED)
            lesson.status = LessonStatus.NO_SHOW

        return self._apply(lesson_id, transition, Messages.LESSON_NO_SHOW)

    def cancel_lesson(
        self,
        lesson_id: UUID,
        reason: Optional[str] = None,
    ) -> OperationResult[Lesson]:
        """
        Cancel a lesson and void its invoice.

        The invoice update is best effort: the lesson stays cancelled even
        if the invoice could not be touched.
        """
        def transition(lesson: Lesson) -> None:
            if lesson.status is LessonStatus.CANCELLED:
                raise InvalidLifecycleTransition(Messages.ALREADY_CANCELLED)
            lesson.status = LessonStatus.CANCELLED
            lesson.cancelled_at = self._clock()
            lesson.cancelled_reason = reason

        result = self._apply(lesson_id, transition, Messages.LESSON_CANCELLED)
        if result.success:
            try:
                voided = self._store.cancel_invoices_for_lesson(lesson_id)
                result.details["invoices_canceled"] = voided
            except Exception as e:
                logger.error(
                    "Error updating invoice status",
                    extra={"lesson_id": str(lesson_id), "error": str(e)},
                    exc_info=True,
                )
                result.details["invoices_canceled"] = 0
        return result

    def mark_participant_paid(
        self,
        lesson_id: UUID,
        client_id: UUID,
    ) -> OperationResult[OwedEntry]:
        return self._set_payment(lesson_id, client_id, paid=True)

    def mark_participant_unpaid(
        self,
        lesson_id: UUID,
        client_id: UUID,
    ) -> OperationResult[OwedEntry]:
        return self._set_payment(lesson_id, client_id, paid=False)

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _owned_lesson(self, coach_id: UUID, lesson_id: UUID) -> Lesson:
        with store_read("get_lesson", lesson_id=str(lesson_id)):
            lesson = self._store.get_lesson(coach_id, lesson_id)
        if lesson is None:
            raise LessonNotFound()
        return lesson

    def _apply(
        self,
        lesson_id: UUID,
        transition: Callable[[Lesson], None],
        success_message: str,
    ) -> OperationResult[Lesson]:
        try:
            coach_id = require_coach(self._identity)
            lesson = self._owned_lesson(coach_id, lesson_id)
            previous = lesson.status
            transition(lesson)
            lesson.updated_at = self._clock()

            try:
                lesson = self._store.update_lesson(lesson)
            except Exception as e:
                logger.error(
                    "Failed to update lesson",
                    extra={"lesson_id": str(lesson_id), "error": str(e)},
                    exc_info=True,
                )
                raise PersistenceFailed(Messages.UPDATE_FAILED, lesson_created=True)

        except BillingError as e:
            return OperationResult.fail(e)

        logger.info(
            "Lesson status changed",
            extra={
                "lesson_id": str(lesson_id),
                "from": previous.value,
                "to": lesson.status.value,
            },
        )
        notify_changed(self._notifier, coach_id, LESSON_VIEWS)
        return OperationResult.ok(lesson, success_message)

    def _set_payment(
        self,
        lesson_id: UUID,
        client_id: UUID,
        paid: bool,
    ) -> OperationResult[OwedEntry]:
        try:
            coach_id = require_coach(self._identity)
            self._owned_lesson(coach_id, lesson_id)

            with store_read("get_owed_entry", lesson_id=str(lesson_id)):
                entry = self._store.get_owed_entry(lesson_id, client_id)
            if entry is None:
                raise EntryNotFound()

            if paid:
                entry.mark_paid(self._clock())
            else:
                entry.mark_unpaid()

            try:
                entry = self._store.update_owed_entry(entry)
            except Exception as e:
                logger.error(
                    "Failed to update participant payment",
                    extra={
                        "lesson_id": str(lesson_id),
                        "client_id": str(client_id),
                        "error": str(e),
                    },
                    exc_info=True,
                )
                raise PersistenceFailed(Messages.UPDATE_FAILED, lesson_created=True)

        except BillingError as e:
            return OperationResult.fail(e)

        logger.info(
            "Participant payment updated",
            extra={
                "lesson_id": str(lesson_id),
                "client_id": str(client_id),
                "status": entry.payment_status.value,
            },
        )
        notify_changed(self._notifier, coach_id, PAYMENT_VIEWS)
        return OperationResult.ok(
            entry, Messages.MARKED_PAID if paid else Messages.MARKED_UNPAID
        )
