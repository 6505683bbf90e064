"""
Financial Summary models.

Everything here is derived: recomputed from lesson rows on every request
and never persisted. Amounts are cents-rounded `Decimal`s by the time
they land in these objects.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
from uuid import UUID

ZERO = Decimal("0.00")
UNKNOWN_CLIENT_NAME = "Unknown Client"
UNCATEGORIZED_NAME = "Uncategorized"
UNCATEGORIZED_COLOR = "#9CA3AF"


class Uncategorized(Enum):
    """Bucket key for lessons booked without a lesson type."""
    TOKEN = "uncategorized"


class UnknownClient(Enum):
    """Bucket key for legacy lessons whose client reference is missing."""
    TOKEN = "unknown"


UNCATEGORIZED = Uncategorized.TOKEN
UNKNOWN_CLIENT = UnknownClient.TOKEN

# Either a real id or the matching sentinel. A UUID can never equal an
# enum member, so the two kinds of key cannot collide.
LessonTypeKey = Union[UUID, Uncategorized]
ClientKey = Union[UUID, UnknownClient]


@dataclass
class MonthlyIncome:
    month: int  # 0-11
    total_paid: Decimal = ZERO
    total_outstanding: Decimal = ZERO
    lesson_count: int = 0
    hours_coached: Decimal = ZERO


@dataclass
class ClientIncome:
    client_id: Optional[UUID]
    client_name: str
    lesson_count: int = 0
    hours_coached: Decimal = ZERO
    total_paid: Decimal = ZERO
    outstanding_balance: Decimal = ZERO


@dataclass
class LessonTypeIncome:
    lesson_type_id: Optional[UUID]
    lesson_type_name: str
    lesson_type_color: str
    rate: Decimal
    lesson_count: int = 0
    hours_coached: Decimal = ZERO
    total_paid: Decimal = ZERO


@dataclass
class QuarterlyIncome:
    quarter: int  # 1-4
    label: str
    income: Decimal
    deadline: str


@dataclass
class TaxSummary:
    gross_income: Decimal
    quarterly_breakdown: list[QuarterlyIncome]
    total_lessons: int
    total_hours_coached: Decimal
    unique_clients_served: int


@dataclass
class ExportRow:
    """One line of the tax export: one participant of one lesson."""
    date: str  # YYYY-MM-DD
    client_name: str
    lesson_type: str
    duration_hours: Decimal
    amount_paid: Decimal
    payment_status: str


@dataclass
class FinancialSummary:
    year: int
    monthly_income: list[MonthlyIncome]
    client_breakdown: list[ClientIncome]
    lesson_type_breakdown: list[LessonTypeIncome]
    tax_summary: TaxSummary
    outstanding_balance: Decimal = ZERO
    lesson_details: list[ExportRow] = field(default_factory=list)
