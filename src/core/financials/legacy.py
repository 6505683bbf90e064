"""
Legacy Bridge.

Lessons booked before multi-participant support carry a single
`client_id` and no owed-entries. Reporting should not care which model a
lesson was booked under, so every lesson is normalized right after the
fetch into a list of `EffectiveEntry` values:

- modern lesson: one effective entry per owed-entry, with the lesson's
  hours divided evenly between participants;
- legacy lesson: one synthesized entry for the whole lesson, priced from
  the rate snapshot and treated as paid once the lesson is Completed.

Synthesized entries live only in memory. Nothing here writes to the store.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional
from uuid import UUID

from ..billing.booking import compute_lesson_total
from ..billing.models import (
    Client,
    Lesson,
    LessonRecord,
    LessonStatus,
    LessonType,
    PaymentStatus,
)
from ..billing.store import LessonStore
from .models import UNKNOWN_CLIENT, UNKNOWN_CLIENT_NAME, ClientKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectiveEntry:
    """One participant's share of one lesson, whatever model it came from."""
    client_key: ClientKey
    client_name: str
    amount: Decimal
    payment_status: PaymentStatus
    credited_hours: Decimal
    synthesized: bool = False

    @property
    def is_paid(self) -> bool:
        return self.payment_status is PaymentStatus.PAID


@dataclass
class NormalizedLesson:
    lesson: Lesson
    lesson_type: Optional[LessonType]
    entries: list[EffectiveEntry] = field(default_factory=list)


def synthesize_entry(lesson: Lesson, client: Optional[Client]) -> EffectiveEntry:
    """Stand-in owed-entry for a lesson that has none."""
    if lesson.client_id is not None:
        client_key: ClientKey = lesson.client_id
    else:
        client_key = UNKNOWN_CLIENT

    return EffectiveEntry(
        client_key=client_key,
        client_name=client.display_name if client else UNKNOWN_CLIENT_NAME,
        amount=compute_lesson_total(lesson.duration_hours, Decimal(lesson.rate_at_booking)),
        payment_status=(
            PaymentStatus.PAID if lesson.status is LessonStatus.COMPLETED
            else PaymentStatus.PENDING
        ),
        credited_hours=lesson.duration_hours,
        synthesized=True,
    )


class LegacyBridge:
    """Normalizes fetched lesson records into effective entries."""

    def __init__(self, store: LessonStore) -> None:
        self._store = store

    def normalize(self, coach_id: UUID, records: list[LessonRecord]) -> list[NormalizedLesson]:
        legacy_clients = self.load_legacy_clients(coach_id, records)
        return [self.normalize_record(record, legacy_clients) for record in records]

    def load_legacy_clients(
        self,
        coach_id: UUID,
        records: list[LessonRecord],
    ) -> dict[UUID, Client]:
        """
        One batch lookup for every legacy client reference.

        A failed lookup leaves the names as placeholders; it does not stop
        the report.
        """
        ids = list(dict.fromkeys(
            r.lesson.client_id for r in records
            if not r.entries and r.lesson.client_id is not None
        ))
        if not ids:
            return {}

        try:
            clients = self._store.list_clients(coach_id, ids)
        except Exception as e:
            logger.warning(
                "Legacy client lookup failed; using placeholder names",
                extra={"coach_id": str(coach_id), "count": len(ids), "error": str(e)},
            )
            return {}

        found = {c.id: c for c in clients}
        missing = [str(i) for i in ids if i not in found]
        if missing:
            logger.warning(
                "Legacy lessons reference unknown clients",
                extra={"coach_id": str(coach_id), "missing": missing},
            )
        return found

    def normalize_record(
        self,
        record: LessonRecord,
        legacy_clients: dict[UUID, Client],
    ) -> NormalizedLesson:
        lesson = record.lesson

        if not record.entries:
            client = legacy_clients.get(lesson.client_id) if lesson.client_id else None
            return NormalizedLesson(
                lesson=lesson,
                lesson_type=record.lesson_type,
                entries=[synthesize_entry(lesson, client)],
            )

        participant_count = len(record.entries)
        # time split, independent of the money split done at booking
        credited_hours = lesson.duration_hours / participant_count

        entries = []
        for owed, client in record.entries:
            entries.append(EffectiveEntry(
                client_key=owed.client_id,
                client_name=client.display_name if client else UNKNOWN_CLIENT_NAME,
                amount=Decimal(owed.amount_owed),
                payment_status=owed.payment_status,
                credited_hours=credited_hours,
            ))

        return NormalizedLesson(lesson=lesson, lesson_type=record.lesson_type, entries=entries)
