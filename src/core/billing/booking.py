"""
Booking Engine.

Creates lessons and the money records that hang off them:

- Multi-participant path: one lesson, one owed-entry per client. The
  lesson total is split evenly and each share is rounded on its own.
- Single-client path: one lesson carrying `client_id`, plus an invoice
  for the whole amount due two weeks after the lesson.

The resolved hourly rate is copied onto the lesson as `rate_at_booking`.
Writes are not transactional. If the lesson is stored but its entries or
invoice are not, the result says so instead of hiding it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID, uuid4

from .errors import (
    BillingError,
    ClientNotFound,
    ErrorKind,
    InvalidDuration,
    InvalidTimeRange,
    Messages,
    PersistenceFailed,
    Unauthenticated,
    ValidationFailed,
)
from .models import (
    Client,
    Invoice,
    Lesson,
    OwedEntry,
    TimeSlot,
    as_utc,
    round_money,
    utc_date,
    utcnow,
)
from .rates import RateResolver
from .store import ChangeNotifier, IdentityProvider, LessonStore, store_read

logger = logging.getLogger(__name__)

BOOKING_VIEWS = ["lessons", "calendar", "invoices", "dashboard"]


# ---------------------------------------------------------------------------
# Money arithmetic
# ---------------------------------------------------------------------------

def compute_lesson_total(duration_hours: Decimal, hourly_rate: Decimal) -> Decimal:
    """round(duration_hours * rate, 2)"""
    return round_money(duration_hours * hourly_rate)


def split_evenly(total: Decimal, participants: int) -> Decimal:
    """
    Per-participant share of `total`, rounded to cents.

    Every participant gets the same rounded share, so the shares can miss
    the total by up to participants // 2 cents: (participants - 1) * 0.005
    for an odd count, half a cent more when an even count lands exactly on
    half cents. The gap is kept as is.
    """
    if participants <= 0:
        return Decimal("0.00")
    return round_money(total / participants)


# ---------------------------------------------------------------------------
# Requests and results
# ---------------------------------------------------------------------------

@dataclass
class BookingLimits:
    """Booking policy. Built from settings by the application layer."""
    min_lesson_minutes: int = 5
    legacy_min_lesson_minutes: int = 15
    max_lesson_hours: int = 24
    max_custom_rate: Decimal = Decimal("999")
    invoice_due_days: int = 14


@dataclass
class BookingRequest:
    """A lesson for one or more clients, priced by lesson type or custom rate."""
    client_ids: list[UUID]
    start_time: datetime
    end_time: datetime
    lesson_type_id: Optional[UUID] = None
    custom_hourly_rate: Optional[Decimal] = None
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None


@dataclass
class SingleClientBookingRequest:
    """A lesson for one client at that client's default rate."""
    client_id: UUID
    start_time: datetime
    end_time: datetime
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None


@dataclass
class BookingResult:
    """
    Outcome of a booking.

    On partial failure `success` is False but `lesson` is set and
    `lesson_created` is True.
    """
    success: bool
    message: str = ""
    error: Optional[ErrorKind] = None
    lesson: Optional[Lesson] = None
    owed_entries: list[OwedEntry] = field(default_factory=list)
    invoice: Optional[Invoice] = None
    total: Optional[Decimal] = None
    lesson_created: bool = False
    entries_created: bool = False
    invoice_created: bool = False


def require_coach(identity: IdentityProvider) -> UUID:
    coach_id = identity.resolve_caller_identity()
    if coach_id is None:
        raise Unauthenticated()
    return coach_id


def notify_changed(
    notifier: Optional[ChangeNotifier],
    coach_id: UUID,
    views: list[str],
) -> None:
    """Tell dependent views to refresh. A failing notifier never fails the write."""
    if notifier is None:
        return
    try:
        notifier.invalidate(coach_id, views)
    except Exception:
        logger.warning(
            "Change notification failed",
            extra={"coach_id": str(coach_id), "views": views},
            exc_info=True,
        )


def generate_invoice_number(when: datetime) -> str:
    return f"INV-{when:%Y%m%d}-{uuid4().hex[:6].upper()}"


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class BookingEngine:
    """
    Books lessons for the calling coach.

    Stateless apart from its collaborators; safe to build per request.
    """

    def __init__(
        self,
        store: LessonStore,
        identity: IdentityProvider,
        notifier: Optional[ChangeNotifier] = None,
        limits: Optional[BookingLimits] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._identity = identity
        self._notifier = notifier
        self._limits = limits or BookingLimits()
        self._clock = clock
        self._rates = RateResolver(store, max_custom_rate=self._limits.max_custom_rate)

    # -- public operations --------------------------------------------------

    def book_lesson(self, request: BookingRequest) -> BookingResult:
        """Book a multi-participant lesson and write one owed-entry per client."""
        try:
            return self._book_lesson(request)
        except PersistenceFailed as e:
            return self._partial_failure(e)
        except BillingError as e:
            return BookingResult(success=False, message=e.message, error=e.kind)

    def book_single_client_lesson(self, request: SingleClientBookingRequest) -> BookingResult:
        """Book a lesson for one client and raise an invoice for it."""
        try:
            return self._book_single_client_lesson(request)
        except PersistenceFailed as e:
            return self._partial_failure(e)
        except BillingError as e:
            return BookingResult(success=False, message=e.message, error=e.kind)

    # -- validation ---------------------------------------------------------

    def validate_slot(self, start: datetime, end: datetime, min_minutes: int) -> TimeSlot:
        """Slot in UTC; naive times are taken as UTC."""
        start, end = as_utc(start), as_utc(end)
        if end <= start:
            raise InvalidTimeRange()

        slot = TimeSlot(start, end)
        max_hours = self._limits.max_lesson_hours
        if slot.duration_minutes < min_minutes or slot.duration_hours > max_hours:
            raise InvalidDuration(
                Messages.INVALID_DURATION.format(min=min_minutes, max=max_hours)
            )
        return slot

    def _owned_clients(self, coach_id: UUID, client_ids: list[UUID]) -> list[Client]:
        """Clients in request order; every id must belong to the coach."""
        with store_read("list_clients", coach_id=str(coach_id)):
            found = {c.id: c for c in self._store.list_clients(coach_id, client_ids)}
        missing = [cid for cid in client_ids if cid not in found]
        if missing:
            logger.info(
                "Booking references clients outside the coach's roster",
                extra={"coach_id": str(coach_id), "missing": [str(m) for m in missing]},
            )
            raise ClientNotFound()
        return [found[cid] for cid in client_ids]

    # -- multi-participant path ---------------------------------------------

    def _book_lesson(self, request: BookingRequest) -> BookingResult:
        coach_id = require_coach(self._identity)

        # a client can appear once per lesson
        client_ids = list(dict.fromkeys(request.client_ids))
        if not client_ids:
            raise ValidationFailed(Messages.NO_PARTICIPANTS)

        slot = self.validate_slot(
            request.start_time, request.end_time, self._limits.min_lesson_minutes
        )
        clients = self._owned_clients(coach_id, client_ids)
        rate, lesson_type = self._rates.resolve(
            coach_id,
            lesson_type_id=request.lesson_type_id,
            custom_rate=request.custom_hourly_rate,
        )

        total = compute_lesson_total(slot.duration_hours, rate)
        share = split_evenly(total, len(clients))

        lesson = self._insert_lesson(Lesson(
            coach_id=coach_id,
            title=request.title or " & ".join(c.display_name for c in clients),
            start_time=slot.start,
            end_time=slot.end,
            rate_at_booking=rate,
            lesson_type_id=lesson_type.id if lesson_type else None,
            description=request.description,
            location=request.location,
        ))

        entries = [
            OwedEntry(lesson_id=lesson.id, client_id=client.id, amount_owed=share)
            for client in clients
        ]
        try:
            self._store.insert_owed_entries(entries)
        except Exception as e:
            logger.error(
                "Failed to insert owed entries",
                extra={"lesson_id": str(lesson.id), "count": len(entries), "error": str(e)},
                exc_info=True,
            )
            raise PersistenceFailed(
                Messages.PARTICIPANTS_CREATE_FAILED, lesson_created=True, lesson=lesson
            )

        logger.info(
            "Booked lesson",
            extra={
                "lesson_id": str(lesson.id),
                "participants": len(entries),
                "rate": str(rate),
                "total": str(total),
                "share": str(share),
            },
        )
        notify_changed(self._notifier, coach_id, BOOKING_VIEWS)

        return BookingResult(
            success=True,
            message=Messages.LESSON_CREATED,
            lesson=lesson,
            owed_entries=entries,
            total=total,
            lesson_created=True,
            entries_created=True,
        )

    # -- single-client path -------------------------------------------------

    def _book_single_client_lesson(self, request: SingleClientBookingRequest) -> BookingResult:
        coach_id = require_coach(self._identity)

        slot = self.validate_slot(
            request.start_time, request.end_time, self._limits.legacy_min_lesson_minutes
        )
        (client,) = self._owned_clients(coach_id, [request.client_id])
        rate = self._rates.resolve_client_rate(client)
        total = compute_lesson_total(slot.duration_hours, rate)

        lesson = self._insert_lesson(Lesson(
            coach_id=coach_id,
            client_id=client.id,
            title=request.title or client.display_name,
            start_time=slot.start,
            end_time=slot.end,
            rate_at_booking=rate,
            description=request.description,
            location=request.location,
        ))

        start_day = utc_date(slot.start)
        invoice = Invoice(
            lesson_id=lesson.id,
            client_id=client.id,
            coach_id=coach_id,
            invoice_number=generate_invoice_number(self._clock()),
            amount_due=total,
            due_date=start_day + timedelta(days=self._limits.invoice_due_days),
        )
        try:
            invoice = self._store.insert_invoice(invoice)
        except Exception as e:
            logger.error(
                "Failed to insert invoice",
                extra={"lesson_id": str(lesson.id), "error": str(e)},
                exc_info=True,
            )
            raise PersistenceFailed(
                Messages.INVOICE_CREATE_FAILED, lesson_created=True, lesson=lesson
            )

        logger.info(
            "Booked single-client lesson",
            extra={
                "lesson_id": str(lesson.id),
                "invoice_number": invoice.invoice_number,
                "amount_due": str(total),
            },
        )
        notify_changed(self._notifier, coach_id, BOOKING_VIEWS)

        return BookingResult(
            success=True,
            message=Messages.LESSON_CREATED,
            lesson=lesson,
            invoice=invoice,
            total=total,
            lesson_created=True,
            invoice_created=True,
        )

    # -- persistence helpers ------------------------------------------------

    def _insert_lesson(self, lesson: Lesson) -> Lesson:
        try:
            return self._store.insert_lesson(lesson)
        except Exception as e:
            logger.error(
                "Failed to insert lesson",
                extra={"coach_id": str(lesson.coach_id), "error": str(e)},
                exc_info=True,
            )
            raise PersistenceFailed(Messages.LESSON_CREATE_FAILED)

    def _partial_failure(self, e: PersistenceFailed) -> BookingResult:
        lesson = e.lesson
        if lesson is not None:
            # dependents may already be stale for the stored lesson
            notify_changed(self._notifier, lesson.coach_id, BOOKING_VIEWS)
        return BookingResult(
            success=False,
            message=e.message,
            error=e.kind,
            lesson=lesson,
            lesson_created=e.lesson_created,
            entries_created=e.entries_created,
            invoice_created=e.invoice_created,
        )
