"""
Unit tests for CSV export of Financial Summary rows.
"""

from decimal import Decimal

from src.core.financials import EXPORT_HEADERS, export_filename, render_csv
from src.core.financials.models import ExportRow


def _row(name="Ana Lopez", paid="50", status="Paid", hours="1"):
    return ExportRow(
        date="2024-01-15",
        client_name=name,
        lesson_type="Private",
        duration_hours=Decimal(hours),
        amount_paid=Decimal(paid),
        payment_status=status,
    )


class TestRenderCsv:

    def test_header_only_when_empty(self):
        assert render_csv([]) == ",".join(EXPORT_HEADERS) + "\n"

    def test_amounts_have_two_decimals(self):
        lines = render_csv([_row(hours="1.5")]).splitlines()

        assert lines[0] == "Date,Client Name,Lesson Type,Duration (hours),Amount Paid,Payment Status"
        assert lines[1] == "2024-01-15,Ana Lopez,Private,1.50,50.00,Paid"

    def test_names_with_commas_are_quoted(self):
        lines = render_csv([_row(name="Lopez, Ana")]).splitlines()
        assert lines[1].startswith('2024-01-15,"Lopez, Ana",')

    def test_paid_only_filters_rows(self):
        rows = [_row(), _row(name="Ben Okafor", paid="0", status="Pending")]

        assert len(render_csv(rows).splitlines()) == 3
        paid_lines = render_csv(rows, paid_only=True).splitlines()
        assert len(paid_lines) == 2
        assert "Ben Okafor" not in paid_lines[1]


def test_export_filename():
    assert export_filename(2024) == "income-2024.csv"
