"""
Financial reporting over booked lessons.

Contains the legacy-lesson bridge, the yearly aggregation, the tax
projection, and CSV export.
"""

from .aggregation import FinancialAggregator, aggregate, year_bounds
from .export import EXPORT_HEADERS, export_filename, render_csv
from .legacy import EffectiveEntry, LegacyBridge, NormalizedLesson, synthesize_entry
from .models import (
    UNCATEGORIZED,
    UNKNOWN_CLIENT,
    ClientIncome,
    ExportRow,
    FinancialSummary,
    LessonTypeIncome,
    MonthlyIncome,
    QuarterlyIncome,
    TaxSummary,
)
from .tax import build_tax_summary, filing_deadline, quarter_of

__all__ = [
    "EXPORT_HEADERS",
    "UNCATEGORIZED",
    "UNKNOWN_CLIENT",
    "ClientIncome",
    "EffectiveEntry",
    "ExportRow",
    "FinancialAggregator",
    "FinancialSummary",
    "LegacyBridge",
    "LessonTypeIncome",
    "MonthlyIncome",
    "NormalizedLesson",
    "QuarterlyIncome",
    "TaxSummary",
    "aggregate",
    "build_tax_summary",
    "export_filename",
    "filing_deadline",
    "quarter_of",
    "render_csv",
    "synthesize_entry",
    "year_bounds",
]
