"""
Lesson API endpoints.

Booking and lifecycle operations for the calling coach:
- Book a lesson for one or more clients
- Book a single-client lesson with an invoice
- Confirm, complete, cancel, or mark a lesson as a no-show
- Mark a participant as paid or unpaid

Every endpoint requires the X-API-Key header. The coach is identified by
the X-Coach-Id header; a missing or malformed id is answered with 401.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from ...core.billing import (
    BookingRequest,
    BookingResult,
    Invoice,
    Lesson,
    OwedEntry,
    SingleClientBookingRequest,
)
from ..dependencies import BookingEngineDep, LessonLifecycleDep
from ..errors import http_error

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class BookLessonRequest(BaseModel):
    """Request to book a lesson for one or more clients."""
    client_ids: list[UUID] = Field(description="Participating clients (duplicates are ignored)")
    start_time: datetime = Field(description="Lesson start (ISO format)")
    end_time: datetime = Field(description="Lesson end (ISO format)")
    lesson_type_id: Optional[UUID] = Field(
        None, description="Lesson type; its rate wins over custom_hourly_rate"
    )
    custom_hourly_rate: Optional[Decimal] = Field(
        None, description="Hourly rate used when no lesson type is given"
    )
    title: Optional[str] = Field(None, max_length=200, description="Defaults to client names")
    description: Optional[str] = Field(None, max_length=2000)
    location: Optional[str] = Field(None, max_length=200)


class BookSingleClientLessonRequest(BaseModel):
    """Request to book a lesson for one client at the client's own rate."""
    client_id: UUID = Field(description="Client being coached")
    start_time: datetime = Field(description="Lesson start (ISO format)")
    end_time: datetime = Field(description="Lesson end (ISO format)")
    title: Optional[str] = Field(None, max_length=200, description="Defaults to client name")
    description: Optional[str] = Field(None, max_length=2000)
    location: Optional[str] = Field(None, max_length=200)


class CancelLessonRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500, description="Why the lesson was cancelled")


class LessonResponse(BaseModel):
    """A lesson as stored."""
    id: UUID
    title: str
    start_time: datetime
    end_time: datetime
    status: str = Field(description="Scheduled, Completed, Cancelled, or No Show")
    rate_at_booking: Decimal = Field(description="Hourly rate captured at booking")
    client_id: Optional[UUID] = None
    lesson_type_id: Optional[UUID] = None
    description: Optional[str] = None
    location: Optional[str] = None
    cancelled_reason: Optional[str] = None


class OwedEntryResponse(BaseModel):
    """What one participant owes for a lesson."""
    lesson_id: UUID
    client_id: UUID
    amount_owed: Decimal
    payment_status: str
    paid_at: Optional[datetime] = None


class InvoiceResponse(BaseModel):
    id: UUID
    invoice_number: str
    amount_due: Decimal
    due_date: date
    payment_status: str


class BookingResponse(BaseModel):
    """Result of a successful booking."""
    message: str
    lesson: LessonResponse
    total: Decimal = Field(description="Lesson total before splitting")
    owed_entries: list[OwedEntryResponse] = Field(default_factory=list)
    invoice: Optional[InvoiceResponse] = None


class LessonActionResponse(BaseModel):
    """Result of a lifecycle change."""
    message: str
    lesson: LessonResponse
    invoices_canceled: Optional[int] = Field(
        None, description="Invoices voided by a cancellation"
    )


class PaymentResponse(BaseModel):
    message: str
    entry: OwedEntryResponse


# ---------------------------------------------------------------------------
# Converters
# ---------------------------------------------------------------------------

def _lesson_response(lesson: Lesson) -> LessonResponse:
    return LessonResponse(
        id=lesson.id,
        title=lesson.title,
        start_time=lesson.start_time,
        end_time=lesson.end_time,
        status=lesson.status.value,
        rate_at_booking=lesson.rate_at_booking,
        client_id=lesson.client_id,
        lesson_type_id=lesson.lesson_type_id,
        description=lesson.description,
        location=lesson.location,
        cancelled_reason=lesson.cancelled_reason,
    )


def _entry_response(entry: OwedEntry) -> OwedEntryResponse:
    return OwedEntryResponse(
        lesson_id=entry.lesson_id,
        client_id=entry.client_id,
        amount_owed=entry.amount_owed,
        payment_status=entry.payment_status.value,
        paid_at=entry.paid_at,
    )


def _invoice_response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        amount_due=invoice.amount_due,
        due_date=invoice.due_date,
        payment_status=invoice.payment_status.value,
    )


def _booking_response(result: BookingResult) -> BookingResponse:
    """Successful result to response; failures become HTTP errors."""
    if not result.success:
        extra = None
        if result.lesson_created and result.lesson is not None:
            # the lesson exists; tell the client so it can be repaired
            extra = {
                "lesson_id": str(result.lesson.id),
                "lesson_created": result.lesson_created,
                "entries_created": result.entries_created,
                "invoice_created": result.invoice_created,
            }
        raise http_error(result.error, result.message, extra)

    return BookingResponse(
        message=result.message,
        lesson=_lesson_response(result.lesson),
        total=result.total,
        owed_entries=[_entry_response(e) for e in result.owed_entries],
        invoice=_invoice_response(result.invoice) if result.invoice else None,
    )


# ---------------------------------------------------------------------------
# Booking Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book a lesson",
    description="Book a lesson for one or more clients. Each client owes an even share.",
)
async def book_lesson(
    request: BookLessonRequest,
    engine: BookingEngineDep,
) -> BookingResponse:
    result = engine.book_lesson(BookingRequest(
        client_ids=request.client_ids,
        start_time=request.start_time,
        end_time=request.end_time,
        lesson_type_id=request.lesson_type_id,
        custom_hourly_rate=request.custom_hourly_rate,
        title=request.title,
        description=request.description,
        location=request.location,
    ))
    return _booking_response(result)


@router.post(
    "/single",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book a single-client lesson",
    description="Book a lesson at the client's default rate and raise an invoice for it.",
)
async def book_single_client_lesson(
    request: BookSingleClientLessonRequest,
    engine: BookingEngineDep,
) -> BookingResponse:
    result = engine.book_single_client_lesson(SingleClientBookingRequest(
        client_id=request.client_id,
        start_time=request.start_time,
        end_time=request.end_time,
        title=request.title,
        description=request.description,
        location=request.location,
    ))
    return _booking_response(result)


# ---------------------------------------------------------------------------
# Lifecycle Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/{lesson_id}/confirm",
    response_model=LessonActionResponse,
    summary="Confirm a lesson",
    description="Mark a scheduled lesson that has already ended as completed.",
)
async def confirm_lesson(lesson_id: UUID, lifecycle: LessonLifecycleDep) -> LessonActionResponse:
    result = lifecycle.confirm_lesson(lesson_id)
    if not result.success:
        raise http_error(result.error, result.message)
    return LessonActionResponse(message=result.message, lesson=_lesson_response(result.data))


@router.post(
    "/{lesson_id}/complete",
    response_model=LessonActionResponse,
    summary="Complete a lesson",
)
async def complete_lesson(lesson_id: UUID, lifecycle: LessonLifecycleDep) -> LessonActionResponse:
    result = lifecycle.complete_lesson(lesson_id)
    if not result.success:
        raise http_error(result.error, result.message)
    return LessonActionResponse(message=result.message, lesson=_lesson_response(result.data))


@router.post(
    "/{lesson_id}/no-show",
    response_model=LessonActionResponse,
    summary="Mark a lesson as a no-show",
)
async def mark_no_show(lesson_id: UUID, lifecycle: LessonLifecycleDep) -> LessonActionResponse:
    result = lifecycle.mark_no_show(lesson_id)
    if not result.success:
        raise http_error(result.error, result.message)
    return LessonActionResponse(message=result.message, lesson=_lesson_response(result.data))


@router.post(
    "/{lesson_id}/cancel",
    response_model=LessonActionResponse,
    summary="Cancel a lesson",
    description="Cancel a lesson and void any invoice raised for it.",
)
async def cancel_lesson(
    lesson_id: UUID,
    lifecycle: LessonLifecycleDep,
    body: Optional[CancelLessonRequest] = None,
) -> LessonActionResponse:
    result = lifecycle.cancel_lesson(lesson_id, reason=body.reason if body else None)
    if not result.success:
        raise http_error(result.error, result.message)
    return LessonActionResponse(
        message=result.message,
        lesson=_lesson_response(result.data),
        invoices_canceled=result.details.get("invoices_canceled"),
    )


# ---------------------------------------------------------------------------
# Payment Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/{lesson_id}/participants/{client_id}/paid",
    response_model=PaymentResponse,
    summary="Mark a participant as paid",
)
async def mark_participant_paid(
    lesson_id: UUID,
    client_id: UUID,
    lifecycle: LessonLifecycleDep,
) -> PaymentResponse:
    result = lifecycle.mark_participant_paid(lesson_id, client_id)
    if not result.success:
        raise http_error(result.error, result.message)
    return PaymentResponse(message=result.message, entry=_entry_response(result.data))


@router.post(
    "/{lesson_id}/participants/{client_id}/unpaid",
    response_model=PaymentResponse,
    summary="Revert a participant payment",
)
async def mark_participant_unpaid(
    lesson_id: UUID,
    client_id: UUID,
    lifecycle: LessonLifecycleDep,
) -> PaymentResponse:
    result = lifecycle.mark_participant_unpaid(lesson_id, client_id)
    if not result.success:
        raise http_error(result.error, result.message)
    return PaymentResponse(message=result.message, entry=_entry_response(result.data))
