"""
Domain models for lesson billing.

These models represent the core business concepts: who is coached, what
kind of lesson was booked, what it cost at booking time, and who owes
what. They have no dependencies on external frameworks, databases, or
APIs, so the billing rules can be tested without any of them.

Money is always `Decimal`. Floats never touch an amount.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4


CENT = Decimal("0.01")
SECONDS_PER_HOUR = Decimal(3600)


def round_money(value: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """`moment` in UTC. Naive datetimes are taken as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def utc_date(moment: datetime) -> date:
    """Calendar date of `moment` in UTC."""
    return as_utc(moment).date()


class LessonStatus(Enum):
    """Where a lesson is in its lifecycle."""
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "No Show"


class PaymentStatus(Enum):
    """Payment state of an owed-entry or invoice."""
    PENDING = "Pending"
    PAID = "Paid"
    OVERDUE = "Overdue"
    CANCELED = "Canceled"


class ClientStatus(Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"  # soft delete


@dataclass
class Client:
    """
    A coached athlete.

    `hourly_rate` is the default rate used when a lesson is booked through
    the single-client path.
    """
    coach_id: UUID
    first_name: str
    last_name: str = ""
    id: UUID = field(default_factory=uuid4)
    email: Optional[str] = None
    phone: Optional[str] = None
    hourly_rate: Decimal = Decimal("0")
    status: ClientStatus = ClientStatus.ACTIVE

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class LessonType:
    """
    A coach-defined kind of lesson with its current hourly rate.

    Only read at booking time. Editing `hourly_rate` later never changes
    lessons that were already booked.
    """
    coach_id: UUID
    name: str
    hourly_rate: Decimal
    id: UUID = field(default_factory=uuid4)
    color: str = "#3B82F6"
    is_active: bool = True


@dataclass(frozen=True)
class TimeSlot:
    """
    The booked span of a lesson.

    Frozen because a slot is a value. Shape rules (minimum and maximum
    length) live in the Booking Engine, which knows which path it is on.
    """
    start: datetime
    end: datetime

    @property
    def duration_seconds(self) -> Decimal:
        return Decimal(str((self.end - self.start).total_seconds()))

    @property
    def duration_minutes(self) -> Decimal:
        return self.duration_seconds / 60

    @property
    def duration_hours(self) -> Decimal:
        return self.duration_seconds / SECONDS_PER_HOUR


@dataclass
class Lesson:
    """
    A booked lesson.

    `rate_at_booking` is the hourly rate captured when the lesson was
    created. Nothing after booking writes to it. Lessons are never
    deleted; they move through `status` instead.

    `client_id` is only set for lessons booked under the single-client
    model. Multi-participant lessons keep their clients in owed-entries.
    """
    coach_id: UUID
    title: str
    start_time: datetime
    end_time: datetime
    rate_at_booking: Decimal
    id: UUID = field(default_factory=uuid4)
    client_id: Optional[UUID] = None
    lesson_type_id: Optional[UUID] = None
    description: Optional[str] = None
    location: Optional[str] = None
    status: LessonStatus = LessonStatus.SCHEDULED
    cancelled_at: Optional[datetime] = None
    cancelled_reason: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def slot(self) -> TimeSlot:
        return TimeSlot(self.start_time, self.end_time)

    @property
    def duration_hours(self) -> Decimal:
        return self.slot.duration_hours

    @property
    def is_legacy(self) -> bool:
        return self.client_id is not None


@dataclass
class OwedEntry:
    """
    What one participant owes for one lesson.

    `amount_owed` is kept after payment so history stays intact; the
    payment state lives in `payment_status` and `paid_at`.
    """
    lesson_id: UUID
    client_id: UUID
    amount_owed: Decimal
    id: UUID = field(default_factory=uuid4)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    paid_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.payment_status is PaymentStatus.PAID and self.paid_at is None:
            raise ValueError("A paid entry must carry paid_at")

    def mark_paid(self, when: Optional[datetime] = None) -> None:
        self.paid_at = when or utcnow()
        self.payment_status = PaymentStatus.PAID

    def mark_unpaid(self) -> None:
        self.payment_status = PaymentStatus.PENDING
        self.paid_at = None


@dataclass
class Invoice:
    """Invoice created alongside a single-client lesson."""
    lesson_id: UUID
    client_id: UUID
    coach_id: UUID
    invoice_number: str
    amount_due: Decimal
    due_date: date
    id: UUID = field(default_factory=uuid4)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    paid_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class LessonRecord:
    """
    A lesson as read back for reporting.

    Joined with its owed-entries (each with its client when the client
    still resolves) and its lesson type. Legacy lessons arrive with no
    entries; their client is looked up separately.
    """
    lesson: Lesson
    entries: list[tuple[OwedEntry, Optional[Client]]] = field(default_factory=list)
    lesson_type: Optional[LessonType] = None
