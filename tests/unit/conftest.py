"""
Shared fixtures for the billing and reporting tests.

Everything runs against the in-memory repository; no database needed.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import pytest

from src.core.billing.models import Client, LessonType
from src.infrastructure.snowflake.repositories.lessons import MockLessonRepository


class FixedIdentity:
    """IdentityProvider that always answers with the same coach."""

    def __init__(self, coach_id: Optional[UUID]) -> None:
        self.coach_id = coach_id

    def resolve_caller_identity(self) -> Optional[UUID]:
        return self.coach_id


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple[UUID, list[str]]] = []

    def invalidate(self, coach_id: UUID, views: list[str]) -> None:
        self.calls.append((coach_id, views))


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def at(year: int, month: int, day: int, hour: int = 10, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def span(start: datetime, minutes: int) -> tuple[datetime, datetime]:
    return start, start + timedelta(minutes=minutes)


@pytest.fixture
def coach_id() -> UUID:
    return uuid4()


@pytest.fixture
def identity(coach_id) -> FixedIdentity:
    return FixedIdentity(coach_id)


@pytest.fixture
def anonymous() -> FixedIdentity:
    return FixedIdentity(None)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def repo() -> MockLessonRepository:
    return MockLessonRepository()


@pytest.fixture
def clients(repo, coach_id) -> list[Client]:
    """Three clients on the coach's roster."""
    return [
        repo.add_client(Client(coach_id=coach_id, first_name="Ana", last_name="Lopez",
                               hourly_rate=Decimal("60"))),
        repo.add_client(Client(coach_id=coach_id, first_name="Ben", last_name="Okafor",
                               hourly_rate=Decimal("75"))),
        repo.add_client(Client(coach_id=coach_id, first_name="Cleo", last_name="Park",
                               hourly_rate=Decimal("80"))),
    ]


@pytest.fixture
def private_lesson_type(repo, coach_id) -> LessonType:
    return repo.add_lesson_type(LessonType(
        coach_id=coach_id, name="Private", hourly_rate=Decimal("100"), color="#10B981",
    ))


@pytest.fixture
def inactive_lesson_type(repo, coach_id) -> LessonType:
    return repo.add_lesson_type(LessonType(
        coach_id=coach_id, name="Retired", hourly_rate=Decimal("50"), is_active=False,
    ))


@pytest.fixture
def clock() -> FixedClock:
    """Frozen 'now': 2024-06-01 12:00 UTC."""
    return FixedClock(at(2024, 6, 1, 12))
