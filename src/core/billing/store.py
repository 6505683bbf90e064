"""
Interfaces the billing core consumes.

Persistence and authentication live outside the core. These protocols
describe exactly what the core needs from them, so tests can hand in an
in-memory store and the API can hand in a database-backed one.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol
from uuid import UUID

from .errors import Messages, PersistenceFailed, StoreError
from .models import Client, Invoice, Lesson, LessonRecord, LessonType, OwedEntry

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """Resolves who is calling. Returns None when nobody is logged in."""

    def resolve_caller_identity(self) -> Optional[UUID]: ...


class LessonStore(Protocol):
    """
    Read/write interface over the coach's lessons and related rows.

    Every read is scoped to a coach. Reads and writes raise `StoreError`
    on backend failure.
    """

    def list_clients(
        self,
        coach_id: UUID,
        ids: Optional[list[UUID]] = None,
    ) -> list[Client]:
        """Clients owned by the coach, optionally restricted to `ids`."""
        ...

    def get_lesson_type(self, coach_id: UUID, type_id: UUID) -> Optional[LessonType]: ...

    def get_lesson(self, coach_id: UUID, lesson_id: UUID) -> Optional[Lesson]: ...

    def insert_lesson(self, lesson: Lesson) -> Lesson: ...

    def insert_owed_entries(self, entries: list[OwedEntry]) -> None: ...

    def insert_invoice(self, invoice: Invoice) -> Invoice: ...

    def update_lesson(self, lesson: Lesson) -> Lesson:
        """Persist lifecycle fields (status, cancellation) of a lesson."""
        ...

    def get_owed_entry(self, lesson_id: UUID, client_id: UUID) -> Optional[OwedEntry]: ...

    def update_owed_entry(self, entry: OwedEntry) -> OwedEntry:
        """Persist payment fields of an owed-entry."""
        ...

    def cancel_invoices_for_lesson(self, lesson_id: UUID) -> int:
        """Mark the lesson's invoices Canceled. Returns how many changed."""
        ...

    def fetch_lessons_for_year(self, coach_id: UUID, year: int) -> list[LessonRecord]:
        """
        Non-cancelled lessons starting in `year` (UTC), ascending by start,
        joined with owed-entries, their clients, and the lesson type.
        """
        ...


@contextmanager
def store_read(operation: str, **context: object) -> Iterator[None]:
    """
    Turn a StoreError raised by a read into PersistenceFailed.

        with store_read("get_lesson", lesson_id=str(lesson_id)):
            lesson = store.get_lesson(coach_id, lesson_id)
    """
    try:
        yield
    except StoreError as e:
        logger.error(
            "Store read failed",
            extra={"operation": operation, "error": str(e), **context},
            exc_info=True,
        )
        raise PersistenceFailed(Messages.LOAD_FAILED) from e


class ChangeNotifier(Protocol):
    """
    Told when billing data changed so dependent views can refresh.

    `views` names what went stale (calendar, dashboard, invoices, ...).
    """

    def invalidate(self, coach_id: UUID, views: list[str]) -> None: ...
