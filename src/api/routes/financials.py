"""
Financial reporting endpoints.

- GET /{year}: the Financial Summary for the calling coach
- GET /{year}/export.csv: the tax export as CSV

Summaries are recomputed on every request; nothing here writes.
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Response
from pydantic import BaseModel, ConfigDict, Field

from ...core.financials import FinancialSummary, export_filename, render_csv
from ..dependencies import FinancialAggregatorDep
from ..errors import http_error

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------

class _FromDomain(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class MonthlyIncomeResponse(_FromDomain):
    month: int = Field(description="Month index, 0 = January")
    total_paid: Decimal
    total_outstanding: Decimal
    lesson_count: int
    hours_coached: Decimal


class ClientIncomeResponse(_FromDomain):
    client_id: Optional[UUID] = Field(None, description="Null for the unknown-client bucket")
    client_name: str
    lesson_count: int
    hours_coached: Decimal
    total_paid: Decimal
    outstanding_balance: Decimal


class LessonTypeIncomeResponse(_FromDomain):
    lesson_type_id: Optional[UUID] = Field(None, description="Null for uncategorized lessons")
    lesson_type_name: str
    lesson_type_color: str
    rate: Decimal
    lesson_count: int
    hours_coached: Decimal
    total_paid: Decimal


class QuarterlyIncomeResponse(_FromDomain):
    quarter: int
    label: str
    income: Decimal
    deadline: str = Field(description='Filing deadline, e.g. "Apr 15, 2024"')


class TaxSummaryResponse(_FromDomain):
    gross_income: Decimal
    quarterly_breakdown: list[QuarterlyIncomeResponse]
    total_lessons: int
    total_hours_coached: Decimal
    unique_clients_served: int


class ExportRowResponse(_FromDomain):
    date: str
    client_name: str
    lesson_type: str
    duration_hours: Decimal
    amount_paid: Decimal
    payment_status: str


class FinancialSummaryResponse(_FromDomain):
    """Income for one calendar year."""
    year: int
    monthly_income: list[MonthlyIncomeResponse]
    client_breakdown: list[ClientIncomeResponse]
    lesson_type_breakdown: list[LessonTypeIncomeResponse]
    tax_summary: TaxSummaryResponse
    outstanding_balance: Decimal
    lesson_details: list[ExportRowResponse]


def _summary_for(aggregator, year: int) -> FinancialSummary:
    result = aggregator.get_financial_summary(year)
    if not result.success:
        raise http_error(result.error, result.message)
    return result.data


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/{year}",
    response_model=FinancialSummaryResponse,
    summary="Get financial summary",
    description="Monthly, per-client, per-lesson-type and quarterly income for a year.",
)
async def get_financial_summary(
    year: int,
    aggregator: FinancialAggregatorDep,
) -> FinancialSummaryResponse:
    summary = _summary_for(aggregator, year)
    return FinancialSummaryResponse.model_validate(summary)


@router.get(
    "/{year}/export.csv",
    summary="Export tax CSV",
    description="One row per lesson participant. Paid rows only unless paid_only=false.",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}},
)
async def export_financials_csv(
    year: int,
    aggregator: FinancialAggregatorDep,
    paid_only: bool = Query(True, description="Only include paid rows"),
) -> Response:
    summary = _summary_for(aggregator, year)
    body = render_csv(summary.lesson_details, paid_only=paid_only)

    logger.info(
        "Exported financial CSV",
        extra={"year": year, "rows": len(summary.lesson_details), "paid_only": paid_only},
    )
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(year)}"'},
    )
