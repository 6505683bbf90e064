"""
Snowflake repository for lessons, participants, and invoices.

This module implements the LessonStore interface the billing core
depends on. The repository:
1. Translates between domain models and database rows
2. Encapsulates all SQL queries
3. Scopes every read to the owning coach

The billing code never writes SQL directly - it asks the store for what
it needs in domain terms. MockLessonRepository offers the same interface
in memory for local development and tests.
"""

import copy
import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from src.core.billing.errors import StoreError
from src.core.billing.models import (
    Client,
    ClientStatus,
    Invoice,
    Lesson,
    LessonRecord,
    LessonStatus,
    LessonType,
    OwedEntry,
    PaymentStatus,
    as_utc,
)
from src.core.financials.aggregation import year_bounds

from ..client import SnowflakeConnection

logger = logging.getLogger(__name__)


class LessonRepository:
    """
    Snowflake-backed LessonStore.

    Each method maps to one thing the billing core needs. Database errors
    are logged with full detail and re-raised as StoreError so the core
    can report partial success without knowing about the driver.
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def list_clients(
        self,
        coach_id: UUID,
        ids: Optional[list[UUID]] = None,
    ) -> list[Client]:
        if ids is not None and not ids:
            return []

        query = """
            SELECT id, coach_id, first_name, last_name, email, phone,
                   hourly_rate, status
            FROM clients
            WHERE coach_id = %s
        """
        params: list = [str(coach_id)]
        if ids:
            placeholders = ", ".join(["%s"] * len(ids))
            query += f" AND id IN ({placeholders})"
            params.extend(str(i) for i in ids)

        rows = self._fetchall(query, tuple(params), "list_clients")
        return [self._build_client(row) for row in rows]

    def get_lesson_type(self, coach_id: UUID, type_id: UUID) -> Optional[LessonType]:
        rows = self._fetchall("""
            SELECT id, coach_id, name, hourly_rate, color, is_active
            FROM lesson_types
            WHERE id = %s AND coach_id = %s
        """, (str(type_id), str(coach_id)), "get_lesson_type")
        return self._build_lesson_type(rows[0]) if rows else None

    def get_lesson(self, coach_id: UUID, lesson_id: UUID) -> Optional[Lesson]:
        rows = self._fetchall(f"""
            SELECT {self._LESSON_COLUMNS}
            FROM lessons l
            WHERE l.id = %s AND l.coach_id = %s
        """, (str(lesson_id), str(coach_id)), "get_lesson")
        return self._build_lesson(rows[0]) if rows else None

    def get_owed_entry(self, lesson_id: UUID, client_id: UUID) -> Optional[OwedEntry]:
        rows = self._fetchall("""
            SELECT id, lesson_id, client_id, amount_owed, payment_status,
                   paid_at, created_at
            FROM lesson_participants
            WHERE lesson_id = %s AND client_id = %s
        """, (str(lesson_id), str(client_id)), "get_owed_entry")
        return self._build_owed_entry(rows[0]) if rows else None

    def fetch_lessons_for_year(self, coach_id: UUID, year: int) -> list[LessonRecord]:
        """
        Non-cancelled lessons for the year with participants and types.

        Two queries: lessons joined with their type, then every participant
        of those lessons joined with the client. Participants are grouped
        back onto their lesson in Python.
        """
        start, end = year_bounds(year)
        params = (str(coach_id), start, end, LessonStatus.CANCELLED.value)

        lesson_rows = self._fetchall(f"""
            SELECT {self._LESSON_COLUMNS},
                   t.id, t.coach_id, t.name, t.hourly_rate, t.color, t.is_active
            FROM lessons l
            LEFT JOIN lesson_types t ON l.lesson_type_id = t.id
            WHERE l.coach_id = %s
              AND l.start_time >= %s
              AND l.start_time < %s
              AND l.status <> %s
            ORDER BY l.start_time ASC
        """, params, "fetch_lessons_for_year")

        participant_rows = self._fetchall("""
            SELECT p.id, p.lesson_id, p.client_id, p.amount_owed, p.payment_status,
                   p.paid_at, p.created_at,
                   c.id, c.coach_id, c.first_name, c.last_name, c.email, c.phone,
                   c.hourly_rate, c.status
            FROM lesson_participants p
            JOIN lessons l ON p.lesson_id = l.id
            LEFT JOIN clients c ON p.client_id = c.id
            WHERE l.coach_id = %s
              AND l.start_time >= %s
              AND l.start_time < %s
              AND l.status <> %s
            ORDER BY p.created_at ASC
        """, params, "fetch_lessons_for_year")

        entries_by_lesson: dict[str, list[tuple[OwedEntry, Optional[Client]]]] = {}
        for row in participant_rows:
            entry = self._build_owed_entry(row[:7])
            client = self._build_client(row[7:]) if row[7] else None
            entries_by_lesson.setdefault(str(entry.lesson_id), []).append((entry, client))

        records = []
        for row in lesson_rows:
            lesson = self._build_lesson(row[:self._LESSON_COLUMN_COUNT])
            type_row = row[self._LESSON_COLUMN_COUNT:]
            records.append(LessonRecord(
                lesson=lesson,
                entries=entries_by_lesson.get(str(lesson.id), []),
                lesson_type=self._build_lesson_type(type_row) if type_row[0] else None,
            ))

        logger.debug(
            "Fetched lessons for year",
            extra={"coach_id": str(coach_id), "year": year, "count": len(records)},
        )
        return records

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def insert_lesson(self, lesson: Lesson) -> Lesson:
        self._execute("""
            INSERT INTO lessons (
                id, coach_id, client_id, lesson_type_id, title, description,
                start_time, end_time, location, rate_at_booking, status,
                created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """, [(
            str(lesson.id), str(lesson.coach_id),
            str(lesson.client_id) if lesson.client_id else None,
            str(lesson.lesson_type_id) if lesson.lesson_type_id else None,
            lesson.title, lesson.description,
            lesson.start_time, lesson.end_time, lesson.location,
            lesson.rate_at_booking, lesson.status.value,
            lesson.created_at, lesson.updated_at,
        )], "insert_lesson")
        return lesson

    def insert_owed_entries(self, entries: list[OwedEntry]) -> None:
        if not entries:
            return
        self._execute("""
            INSERT INTO lesson_participants (
                id, lesson_id, client_id, amount_owed, payment_status,
                paid_at, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
        """, [
            (
                str(e.id), str(e.lesson_id), str(e.client_id), e.amount_owed,
                e.payment_status.value, e.paid_at, e.created_at,
            )
            for e in entries
        ], "insert_owed_entries")

    def insert_invoice(self, invoice: Invoice) -> Invoice:
        self._execute("""
            INSERT INTO invoices (
                id, lesson_id, client_id, coach_id, invoice_number,
                amount_due, due_date, payment_status, paid_at, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """, [(
            str(invoice.id), str(invoice.lesson_id), str(invoice.client_id),
            str(invoice.coach_id), invoice.invoice_number, invoice.amount_due,
            invoice.due_date, invoice.payment_status.value, invoice.paid_at,
            invoice.created_at,
        )], "insert_invoice")
        return invoice

    def update_lesson(self, lesson: Lesson) -> Lesson:
        # rate_at_booking is never updated
        self._execute("""
            UPDATE lessons
            SET status = %s, cancelled_at = %s, cancelled_reason = %s, updated_at = %s
            WHERE id = %s AND coach_id = %s
        """, [(
            lesson.status.value, lesson.cancelled_at, lesson.cancelled_reason,
            lesson.updated_at, str(lesson.id), str(lesson.coach_id),
        )], "update_lesson")
        return lesson

    def update_owed_entry(self, entry: OwedEntry) -> OwedEntry:
        self._execute("""
            UPDATE lesson_participants
            SET payment_status = %s, paid_at = %s
            WHERE id = %s
        """, [(entry.payment_status.value, entry.paid_at, str(entry.id))], "update_owed_entry")
        return entry

    def cancel_invoices_for_lesson(self, lesson_id: UUID) -> int:
        return self._execute("""
            UPDATE invoices SET payment_status = %s WHERE lesson_id = %s
        """, [(PaymentStatus.CANCELED.value, str(lesson_id))], "cancel_invoices_for_lesson")

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    _LESSON_COLUMNS = """
        l.id, l.coach_id, l.client_id, l.lesson_type_id, l.title, l.description,
        l.start_time, l.end_time, l.location, l.rate_at_booking, l.status,
        l.cancelled_at, l.cancelled_reason, l.created_at, l.updated_at
    """
    _LESSON_COLUMN_COUNT = 15

    def _fetchall(self, query: str, params: tuple, operation: str) -> list:
        cursor = self._conn.cursor()
        try:
            cursor.execute(query, params)
            return cursor.fetchall()
        except Exception as e:
            logger.error(
                "Snowflake query failed",
                extra={"operation": operation, "error": str(e)},
                exc_info=True,
            )
            raise StoreError(f"{operation} failed: {e}") from e
        finally:
            cursor.close()

    def _execute(self, query: str, param_rows: list[tuple], operation: str) -> int:
        """Run a write for each parameter row and commit once."""
        cursor = self._conn.cursor()
        affected = 0
        try:
            for params in param_rows:
                cursor.execute(query, params)
                affected += cursor.rowcount or 0
            self._conn.commit()
            return affected
        except Exception as e:
            logger.error(
                "Snowflake write failed",
                extra={"operation": operation, "rows": len(param_rows), "error": str(e)},
                exc_info=True,
            )
            raise StoreError(f"{operation} failed: {e}") from e
        finally:
            cursor.close()

    @staticmethod
    def _uuid(value) -> Optional[UUID]:
        return UUID(str(value)) if value else None

    def _build_client(self, row) -> Client:
        return Client(
            id=UUID(str(row[0])),
            coach_id=UUID(str(row[1])),
            first_name=row[2] or "",
            last_name=row[3] or "",
            email=row[4],
            phone=row[5],
            hourly_rate=Decimal(str(row[6] or 0)),
            status=ClientStatus(row[7]) if row[7] else ClientStatus.ACTIVE,
        )

    def _build_lesson_type(self, row) -> LessonType:
        return LessonType(
            id=UUID(str(row[0])),
            coach_id=UUID(str(row[1])),
            name=row[2],
            hourly_rate=Decimal(str(row[3])),
            color=row[4] or "#3B82F6",
            is_active=bool(row[5]),
        )

    def _build_lesson(self, row) -> Lesson:
        return Lesson(
            id=UUID(str(row[0])),
            coach_id=UUID(str(row[1])),
            client_id=self._uuid(row[2]),
            lesson_type_id=self._uuid(row[3]),
            title=row[4] or "",
            description=row[5],
            start_time=as_utc(row[6]),
            end_time=as_utc(row[7]),
            location=row[8],
            rate_at_booking=Decimal(str(row[9] or 0)),
            status=LessonStatus(row[10]),
            cancelled_at=row[11],
            cancelled_reason=row[12],
            created_at=row[13],
            updated_at=row[14],
        )

    def _build_owed_entry(self, row) -> OwedEntry:
        status = PaymentStatus(row[4]) if row[4] else PaymentStatus.PENDING
        paid_at = row[5]
        if status is PaymentStatus.PAID and paid_at is None:
            # rows marked paid before paid_at existed; keep the status, stamp creation time
            paid_at = row[6]
        return OwedEntry(
            id=UUID(str(row[0])),
            lesson_id=UUID(str(row[1])),
            client_id=UUID(str(row[2])),
            amount_owed=Decimal(str(row[3] or 0)),
            payment_status=status,
            paid_at=paid_at,
            created_at=row[6],
        )


# ---------------------------------------------------------------------------
# Mock Repository for Local Development
# ---------------------------------------------------------------------------

class MockLessonRepository:
    """
    In-memory LessonStore.

    Stores rows in dictionaries and hands out copies, so callers only see
    changes that went through a write method - the same as a real store.

    Not suitable for production, but perfect for:
    - Local development
    - Unit tests
    - CI/CD environments
    """

    def __init__(self) -> None:
        self._clients: dict[UUID, Client] = {}
        self._lesson_types: dict[UUID, LessonType] = {}
        self._lessons: dict[UUID, Lesson] = {}
        self._entries: dict[UUID, OwedEntry] = {}
        self._invoices: dict[UUID, Invoice] = {}

        logger.info("Initialized mock lesson repository (in-memory)")

    # Helper methods for seeding and assertions

    def add_client(self, client: Client) -> Client:
        self._clients[client.id] = copy.deepcopy(client)
        return client

    def add_lesson_type(self, lesson_type: LessonType) -> LessonType:
        self._lesson_types[lesson_type.id] = copy.deepcopy(lesson_type)
        return lesson_type

    def add_lesson(self, lesson: Lesson, entries: Optional[list[OwedEntry]] = None) -> Lesson:
        self._lessons[lesson.id] = copy.deepcopy(lesson)
        for entry in entries or []:
            self._entries[entry.id] = copy.deepcopy(entry)
        return lesson

    def entries_for(self, lesson_id: UUID) -> list[OwedEntry]:
        return [copy.deepcopy(e) for e in self._entries.values() if e.lesson_id == lesson_id]

    def invoices_for(self, lesson_id: UUID) -> list[Invoice]:
        return [copy.deepcopy(i) for i in self._invoices.values() if i.lesson_id == lesson_id]

    @property
    def lesson_count(self) -> int:
        return len(self._lessons)

    # LessonStore

    def list_clients(
        self,
        coach_id: UUID,
        ids: Optional[list[UUID]] = None,
    ) -> list[Client]:
        wanted = set(ids) if ids is not None else None
        return [
            copy.deepcopy(c) for c in self._clients.values()
            if c.coach_id == coach_id and (wanted is None or c.id in wanted)
        ]

    def get_lesson_type(self, coach_id: UUID, type_id: UUID) -> Optional[LessonType]:
        lesson_type = self._lesson_types.get(type_id)
        if lesson_type is None or lesson_type.coach_id != coach_id:
            return None
        return copy.deepcopy(lesson_type)

    def get_lesson(self, coach_id: UUID, lesson_id: UUID) -> Optional[Lesson]:
        lesson = self._lessons.get(lesson_id)
        if lesson is None or lesson.coach_id != coach_id:
            return None
        return copy.deepcopy(lesson)

    def insert_lesson(self, lesson: Lesson) -> Lesson:
        self._lessons[lesson.id] = copy.deepcopy(lesson)
        return lesson

    def insert_owed_entries(self, entries: list[OwedEntry]) -> None:
        for entry in entries:
            self._entries[entry.id] = copy.deepcopy(entry)

    def insert_invoice(self, invoice: Invoice) -> Invoice:
        self._invoices[invoice.id] = copy.deepcopy(invoice)
        return invoice

    def update_lesson(self, lesson: Lesson) -> Lesson:
        stored = self._lessons.get(lesson.id)
        if stored is None:
            raise StoreError(f"Lesson {lesson.id} does not exist")
        stored.status = lesson.status
        stored.cancelled_at = lesson.cancelled_at
        stored.cancelled_reason = lesson.cancelled_reason
        stored.updated_at = lesson.updated_at
        return copy.deepcopy(stored)

    def get_owed_entry(self, lesson_id: UUID, client_id: UUID) -> Optional[OwedEntry]:
        for entry in self._entries.values():
            if entry.lesson_id == lesson_id and entry.client_id == client_id:
                return copy.deepcopy(entry)
        return None

    def update_owed_entry(self, entry: OwedEntry) -> OwedEntry:
        stored = self._entries.get(entry.id)
        if stored is None:
            raise StoreError(f"Owed entry {entry.id} does not exist")
        stored.payment_status = entry.payment_status
        stored.paid_at = entry.paid_at
        return copy.deepcopy(stored)

    def cancel_invoices_for_lesson(self, lesson_id: UUID) -> int:
        changed = 0
        for invoice in self._invoices.values():
            if invoice.lesson_id == lesson_id:
                invoice.payment_status = PaymentStatus.CANCELED
                changed += 1
        return changed

    def fetch_lessons_for_year(self, coach_id: UUID, year: int) -> list[LessonRecord]:
        start, end = year_bounds(year)
        lessons = sorted(
            (
                l for l in self._lessons.values()
                if l.coach_id == coach_id
                and l.status is not LessonStatus.CANCELLED
                and start <= as_utc(l.start_time) < end
            ),
            key=lambda l: as_utc(l.start_time),
        )

        records = []
        for lesson in lessons:
            entries = [
                (copy.deepcopy(e), copy.deepcopy(self._clients.get(e.client_id)))
                for e in self._entries.values()
                if e.lesson_id == lesson.id
            ]
            lesson_type = self._lesson_types.get(lesson.lesson_type_id) if lesson.lesson_type_id else None
            records.append(LessonRecord(
                lesson=copy.deepcopy(lesson),
                entries=entries,
                lesson_type=copy.deepcopy(lesson_type),
            ))
        return records


def create_lesson_repository(
    connection: Optional[SnowflakeConnection] = None,
    mock_mode: bool = False,
):
    """
    Create a LessonStore based on configuration.

    Args:
        connection: Open Snowflake connection (required if not mock_mode)
        mock_mode: If True, return the in-memory repository

    Returns:
        LessonStore implementation (Snowflake or Mock)
    """
    if mock_mode:
        return MockLessonRepository()

    if connection is None:
        raise ValueError("connection is required when not in mock mode")

    return LessonRepository(connection)
