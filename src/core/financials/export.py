"""
Delimited-text export of Financial Summary rows.

The tax export a coach hands to an accountant only includes paid rows,
so `paid_only` is the usual choice; the full list is available for
reconciliation.
"""

import csv
import io
from typing import Iterable

from ..billing.models import PaymentStatus
from .models import ExportRow

EXPORT_HEADERS = [
    "Date",
    "Client Name",
    "Lesson Type",
    "Duration (hours)",
    "Amount Paid",
    "Payment Status",
]


def export_filename(year: int) -> str:
    return f"income-{year}.csv"


def render_csv(rows: Iterable[ExportRow], paid_only: bool = False) -> str:
    """Render rows as CSV text with a header line."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)

    for row in rows:
        if paid_only and row.payment_status != PaymentStatus.PAID.value:
            continue
        writer.writerow([
            row.date,
            row.client_name,
            row.lesson_type,
            f"{row.duration_hours:.2f}",
            f"{row.amount_paid:.2f}",
            row.payment_status,
        ])

    return buffer.getvalue()
