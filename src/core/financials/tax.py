"""
Tax Reporter.

A pure projection of the aggregation totals into what a coach needs for
estimated quarterly taxes: gross income, income per calendar quarter
with its filing deadline, and activity counts.
"""

from decimal import Decimal

from ..billing.models import round_money
from .models import QuarterlyIncome, TaxSummary

QUARTERLY_DEADLINES = {
    1: "Apr 15",
    2: "Jun 15",
    3: "Sep 15",
    4: "Jan 15",
}

QUARTER_LABELS = {
    1: "Q1 (Jan-Mar)",
    2: "Q2 (Apr-Jun)",
    3: "Q3 (Jul-Sep)",
    4: "Q4 (Oct-Dec)",
}


def quarter_of(month: int) -> int:
    """Calendar quarter (1-4) of a zero-based month."""
    return month // 3 + 1


def filing_deadline(quarter: int, year: int) -> str:
    # Q4 payments are due in January of the next year
    deadline_year = year + 1 if quarter == 4 else year
    return f"{QUARTERLY_DEADLINES[quarter]}, {deadline_year}"


def build_tax_summary(
    year: int,
    quarterly_paid: dict[int, Decimal],
    gross_income: Decimal,
    total_lessons: int,
    total_hours: Decimal,
    unique_clients: int,
) -> TaxSummary:
    quarterly = [
        QuarterlyIncome(
            quarter=q,
            label=QUARTER_LABELS[q],
            income=round_money(quarterly_paid.get(q, Decimal(0))),
            deadline=filing_deadline(q, year),
        )
        for q in (1, 2, 3, 4)
    ]

    return TaxSummary(
        gross_income=round_money(gross_income),
        quarterly_breakdown=quarterly,
        total_lessons=total_lessons,
        total_hours_coached=round_money(total_hours),
        unique_clients_served=unique_clients,
    )
