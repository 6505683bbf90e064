"""
Aggregation Engine.

Folds a coach's lessons for one calendar year into a Financial Summary:
income per month and quarter, breakdowns per client and per lesson
type, outstanding balances, and one export row per participant.

The fold is pure. All running totals live in a `_Accumulator` created
per call and passed through explicitly, so concurrent requests for
different coaches or years never share state.

Counting rules:
- a lesson counts once toward monthly, per-type and total lesson counts;
- each participant counts once toward their own client's lesson count;
- hours are credited per participant (lesson hours / participants), so
  they add back up to the lesson's length;
- money is counted as income only when the entry is Paid.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from ..billing.booking import require_coach
from ..billing.errors import (
    BillingError,
    Messages,
    OperationResult,
    PersistenceFailed,
    ValidationFailed,
)
from ..billing.models import (
    LessonStatus,
    LessonType,
    PaymentStatus,
    as_utc,
    round_money,
    utc_date,
)
from ..billing.store import IdentityProvider, LessonStore
from .legacy import EffectiveEntry, LegacyBridge, NormalizedLesson
from .models import (
    UNCATEGORIZED,
    UNCATEGORIZED_COLOR,
    UNCATEGORIZED_NAME,
    ZERO,
    ClientIncome,
    ClientKey,
    ExportRow,
    FinancialSummary,
    LessonTypeIncome,
    LessonTypeKey,
    MonthlyIncome,
)
from .tax import build_tax_summary, quarter_of

logger = logging.getLogger(__name__)

MIN_YEAR = 1970
MAX_YEAR = 9998

OUTSTANDING_STATUSES = (PaymentStatus.PENDING, PaymentStatus.OVERDUE)


def year_bounds(year: int) -> tuple[datetime, datetime]:
    """[Jan 1 of year, Jan 1 of year + 1) in UTC."""
    return (
        datetime(year, 1, 1, tzinfo=timezone.utc),
        datetime(year + 1, 1, 1, tzinfo=timezone.utc),
    )


@dataclass
class _Accumulator:
    year: int
    monthly: list[MonthlyIncome] = field(
        default_factory=lambda: [MonthlyIncome(month=m) for m in range(12)]
    )
    clients: dict[ClientKey, ClientIncome] = field(default_factory=dict)
    lesson_types: dict[LessonTypeKey, LessonTypeIncome] = field(default_factory=dict)
    quarterly_paid: dict[int, Decimal] = field(
        default_factory=lambda: {q: ZERO for q in (1, 2, 3, 4)}
    )
    unique_clients: set[UUID] = field(default_factory=set)
    rows: list[ExportRow] = field(default_factory=list)
    total_lessons: int = 0
    total_hours: Decimal = ZERO
    gross_income: Decimal = ZERO
    outstanding: Decimal = ZERO

    def lesson_type_bucket(self, lesson_type: Optional[LessonType]) -> LessonTypeIncome:
        key: LessonTypeKey = lesson_type.id if lesson_type else UNCATEGORIZED
        bucket = self.lesson_types.get(key)
        if bucket is None:
            if lesson_type is None:
                bucket = LessonTypeIncome(
                    lesson_type_id=None,
                    lesson_type_name=UNCATEGORIZED_NAME,
                    lesson_type_color=UNCATEGORIZED_COLOR,
                    rate=ZERO,
                )
            else:
                bucket = LessonTypeIncome(
                    lesson_type_id=lesson_type.id,
                    lesson_type_name=lesson_type.name,
                    lesson_type_color=lesson_type.color,
                    rate=Decimal(lesson_type.hourly_rate),
                )
            self.lesson_types[key] = bucket
        return bucket

    def client_bucket(self, entry: EffectiveEntry) -> ClientIncome:
        bucket = self.clients.get(entry.client_key)
        if bucket is None:
            bucket = ClientIncome(
                client_id=entry.client_key if isinstance(entry.client_key, UUID) else None,
                client_name=entry.client_name,
            )
            self.clients[entry.client_key] = bucket
        return bucket


class FinancialAggregator:
    """Builds the Financial Summary for the calling coach."""

    def __init__(self, store: LessonStore, identity: IdentityProvider) -> None:
        self._store = store
        self._identity = identity
        self._bridge = LegacyBridge(store)

    def get_financial_summary(self, year: int) -> OperationResult[FinancialSummary]:
        try:
            coach_id = require_coach(self._identity)
            if not MIN_YEAR <= year <= MAX_YEAR:
                raise ValidationFailed(f"Year must be between {MIN_YEAR} and {MAX_YEAR}.")

            try:
                records = self._store.fetch_lessons_for_year(coach_id, year)
            except Exception as e:
                logger.error(
                    "Error fetching lessons for financials",
                    extra={"coach_id": str(coach_id), "year": year, "error": str(e)},
                    exc_info=True,
                )
                raise PersistenceFailed(Messages.FETCH_FAILED)

        except BillingError as e:
            return OperationResult.fail(e)

        lessons = self._bridge.normalize(coach_id, records)
        summary = aggregate(year, lessons)

        logger.info(
            "Built financial summary",
            extra={
                "coach_id": str(coach_id),
                "year": year,
                "lessons": summary.tax_summary.total_lessons,
                "gross_income": str(summary.tax_summary.gross_income),
            },
        )
        return OperationResult.ok(summary)


def aggregate(year: int, lessons: list[NormalizedLesson]) -> FinancialSummary:
    """Fold normalized lessons into a Financial Summary for `year`."""
    acc = _Accumulator(year=year)
    start, end = year_bounds(year)

    for normalized in lessons:
        lesson = normalized.lesson
        if lesson.status is LessonStatus.CANCELLED:
            continue
        if not start <= as_utc(lesson.start_time) < end:
            continue
        _fold_lesson(acc, normalized)

    return _finish(acc)


def _fold_lesson(acc: _Accumulator, normalized: NormalizedLesson) -> None:
    lesson = normalized.lesson
    started = as_utc(lesson.start_time)
    month = started.month - 1
    quarter = quarter_of(month)
    completed = lesson.status is LessonStatus.COMPLETED
    type_bucket = acc.lesson_type_bucket(normalized.lesson_type)
    type_name = type_bucket.lesson_type_name
    lesson_date = utc_date(started).isoformat()

    acc.total_lessons += 1
    acc.total_hours += lesson.duration_hours
    acc.monthly[month].lesson_count += 1
    type_bucket.lesson_count += 1

    for entry in normalized.entries:
        client = acc.client_bucket(entry)
        if isinstance(entry.client_key, UUID):
            acc.unique_clients.add(entry.client_key)

        client.lesson_count += 1
        client.hours_coached += entry.credited_hours
        acc.monthly[month].hours_coached += entry.credited_hours
        type_bucket.hours_coached += entry.credited_hours

        if entry.is_paid:
            client.total_paid += entry.amount
            acc.monthly[month].total_paid += entry.amount
            acc.quarterly_paid[quarter] += entry.amount
            type_bucket.total_paid += entry.amount
            acc.gross_income += entry.amount
        elif completed and entry.payment_status in OUTSTANDING_STATUSES:
            client.outstanding_balance += entry.amount
            acc.monthly[month].total_outstanding += entry.amount
            acc.outstanding += entry.amount

        acc.rows.append(ExportRow(
            date=lesson_date,
            client_name=entry.client_name,
            lesson_type=type_name,
            duration_hours=round_money(entry.credited_hours),
            amount_paid=round_money(entry.amount) if entry.is_paid else ZERO,
            payment_status=entry.payment_status.value,
        ))


def _finish(acc: _Accumulator) -> FinancialSummary:
    for month in acc.monthly:
        month.total_paid = round_money(month.total_paid)
        month.total_outstanding = round_money(month.total_outstanding)
        month.hours_coached = round_money(month.hours_coached)

    for bucket in acc.clients.values():
        bucket.total_paid = round_money(bucket.total_paid)
        bucket.outstanding_balance = round_money(bucket.outstanding_balance)
        bucket.hours_coached = round_money(bucket.hours_coached)

    for bucket in acc.lesson_types.values():
        bucket.total_paid = round_money(bucket.total_paid)
        bucket.hours_coached = round_money(bucket.hours_coached)

    # sorted() is stable, so ties keep first-seen order
    client_breakdown = sorted(acc.clients.values(), key=lambda c: c.total_paid, reverse=True)
    type_breakdown = sorted(acc.lesson_types.values(), key=lambda t: t.total_paid, reverse=True)

    tax_summary = build_tax_summary(
        year=acc.year,
        quarterly_paid=acc.quarterly_paid,
        gross_income=acc.gross_income,
        total_lessons=acc.total_lessons,
        total_hours=acc.total_hours,
        unique_clients=len(acc.unique_clients),
    )

    return FinancialSummary(
        year=acc.year,
        monthly_income=acc.monthly,
        client_breakdown=client_breakdown,
        lesson_type_breakdown=type_breakdown,
        tax_summary=tax_summary,
        outstanding_balance=round_money(acc.outstanding),
        lesson_details=acc.rows,
    )
