"""
Unit tests for normalizing legacy single-client lessons.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from src.core.billing.errors import StoreError
from src.core.billing.models import (
    Lesson,
    LessonRecord,
    LessonStatus,
    OwedEntry,
    PaymentStatus,
)
from src.core.financials import UNKNOWN_CLIENT, LegacyBridge, aggregate, synthesize_entry

START = datetime(2024, 2, 12, 16, tzinfo=timezone.utc)


def _legacy_lesson(coach_id, client_id, status=LessonStatus.COMPLETED, rate="75", minutes=60):
    return Lesson(
        coach_id=coach_id,
        client_id=client_id,
        title="Private lesson",
        start_time=START,
        end_time=START + timedelta(minutes=minutes),
        rate_at_booking=Decimal(rate),
        status=status,
    )


class TestSynthesizeEntry:

    def test_completed_legacy_lesson_counts_as_paid(self, coach_id, clients):
        lesson = _legacy_lesson(coach_id, clients[1].id)
        entry = synthesize_entry(lesson, clients[1])

        assert entry.amount == Decimal("75.00")
        assert entry.payment_status is PaymentStatus.PAID
        assert entry.is_paid
        assert entry.client_key == clients[1].id
        assert entry.client_name == "Ben Okafor"
        assert entry.credited_hours == Decimal(1)
        assert entry.synthesized

    def test_scheduled_legacy_lesson_is_pending(self, coach_id, clients):
        lesson = _legacy_lesson(coach_id, clients[1].id, status=LessonStatus.SCHEDULED)
        entry = synthesize_entry(lesson, clients[1])

        assert entry.payment_status is PaymentStatus.PENDING
        assert entry.amount == Decimal("75.00")

    def test_amount_is_rounded_to_cents(self, coach_id):
        lesson = _legacy_lesson(coach_id, uuid4(), rate="50", minutes=20)
        assert synthesize_entry(lesson, None).amount == Decimal("16.67")

    def test_missing_client_reference(self, coach_id):
        lesson = _legacy_lesson(coach_id, None)
        entry = synthesize_entry(lesson, None)

        assert entry.client_key is UNKNOWN_CLIENT
        assert entry.client_name == "Unknown Client"


class TestLegacyBridge:

    def test_single_legacy_lesson_end_to_end(self, repo, coach_id, clients):
        """Rate 75, one hour, Completed: one paid row of 75.00."""
        lesson = _legacy_lesson(coach_id, clients[1].id)
        records = [LessonRecord(lesson=lesson)]

        normalized = LegacyBridge(repo).normalize(coach_id, records)
        summary = aggregate(2024, normalized)

        assert len(summary.lesson_details) == 1
        row = summary.lesson_details[0]
        assert row.amount_paid == Decimal("75.00")
        assert row.payment_status == "Paid"
        assert row.client_name == "Ben Okafor"
        assert summary.monthly_income[1].total_paid == Decimal("75.00")
        assert summary.tax_summary.quarterly_breakdown[0].income == Decimal("75.00")
        assert summary.client_breakdown[0].client_id == clients[1].id
        assert summary.client_breakdown[0].total_paid == Decimal("75.00")

    def test_client_lookup_is_batched(self, repo, coach_id, clients, monkeypatch):
        calls = []
        original = repo.list_clients

        def counting(coach, ids=None):
            calls.append(ids)
            return original(coach, ids)

        monkeypatch.setattr(repo, "list_clients", counting)
        records = [
            LessonRecord(lesson=_legacy_lesson(coach_id, clients[0].id)),
            LessonRecord(lesson=_legacy_lesson(coach_id, clients[1].id)),
            LessonRecord(lesson=_legacy_lesson(coach_id, clients[0].id)),
        ]

        normalized = LegacyBridge(repo).normalize(coach_id, records)

        assert len(calls) == 1
        assert calls[0] == [clients[0].id, clients[1].id]
        assert [n.entries[0].client_name for n in normalized] == [
            "Ana Lopez", "Ben Okafor", "Ana Lopez",
        ]

    def test_unresolved_client_gets_placeholder_name(self, repo, coach_id):
        ghost = uuid4()
        normalized = LegacyBridge(repo).normalize(
            coach_id, [LessonRecord(lesson=_legacy_lesson(coach_id, ghost))]
        )

        entry = normalized[0].entries[0]
        assert entry.client_key == ghost
        assert entry.client_name == "Unknown Client"

    def test_lookup_failure_does_not_stop_the_report(self, repo, coach_id, clients,
                                                     monkeypatch):
        def fail(coach, ids=None):
            raise StoreError("clients unavailable")

        monkeypatch.setattr(repo, "list_clients", fail)
        normalized = LegacyBridge(repo).normalize(
            coach_id, [LessonRecord(lesson=_legacy_lesson(coach_id, clients[0].id))]
        )

        assert normalized[0].entries[0].client_name == "Unknown Client"
        assert normalized[0].entries[0].amount == Decimal("75.00")

    def test_modern_lesson_splits_hours(self, repo, coach_id, clients):
        lesson = Lesson(
            coach_id=coach_id,
            title="Group",
            start_time=START,
            end_time=START + timedelta(minutes=90),
            rate_at_booking=Decimal("90"),
        )
        entries = [
            (OwedEntry(lesson_id=lesson.id, client_id=c.id, amount_owed=Decimal("45.00")), c)
            for c in clients
        ]

        normalized = LegacyBridge(repo).normalize(
            coach_id, [LessonRecord(lesson=lesson, entries=entries)]
        )

        effective = normalized[0].entries
        assert len(effective) == 3
        assert all(e.credited_hours == Decimal("0.5") for e in effective)
        assert all(not e.synthesized for e in effective)
        assert [e.amount for e in effective] == [Decimal("45.00")] * 3

    def test_modern_lesson_is_not_looked_up_again(self, repo, coach_id, clients, monkeypatch):
        def fail(coach, ids=None):
            raise AssertionError("no lookup expected")

        lesson = Lesson(
            coach_id=coach_id,
            title="Group",
            start_time=START,
            end_time=START + timedelta(hours=1),
            rate_at_booking=Decimal("60"),
            client_id=clients[0].id,
        )
        entry = OwedEntry(lesson_id=lesson.id, client_id=clients[0].id, amount_owed=Decimal("60"))

        monkeypatch.setattr(repo, "list_clients", fail)
        normalized = LegacyBridge(repo).normalize(
            coach_id, [LessonRecord(lesson=lesson, entries=[(entry, clients[0])])]
        )

        assert len(normalized[0].entries) == 1
        assert not normalized[0].entries[0].synthesized
