"""
Booking schemas
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import EmailStr, Field, model_validator

from app.models.booking import BookingStatus, BookingPaymentStatus, EventType
from app.schemas.base import BaseSchema, IDSchema, TimestampSchema, Money, TIME_PATTERN
from app.schemas.venue import CancellationPolicySchema


def _check_time_order(start_time: str, end_time: str):
    if end_time <= start_time:
        raise ValueError("endTime must be after startTime")


class BookingCreate(BaseSchema):
    """Booking creation schema"""
    venue_id: UUID
    event_date: date
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str = Field(..., pattern=TIME_PATTERN)
    event_type: EventType = EventType.OTHER
    guest_count: int = Field(..., ge=1)
    contact_name: str = Field(..., min_length=1, max_length=255)
    contact_phone: str = Field(..., min_length=5, max_length=20)
    contact_email: EmailStr
    special_requests: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_times(self):
        _check_time_order(self.start_time, self.end_time)
        return self


class BookingStatusUpdate(BaseSchema):
    """Status and/or payment status change"""
    status: Optional[BookingStatus] = None
    payment_status: Optional[BookingPaymentStatus] = None
    cancellation_reason: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def require_change(self):
        if self.status is None and self.payment_status is None:
            raise ValueError("Either status or paymentStatus must be provided")
        return self


class BookingReschedule(BaseSchema):
    new_event_date: date
    new_start_time: str = Field(..., pattern=TIME_PATTERN)
    new_end_time: str = Field(..., pattern=TIME_PATTERN)

    @model_validator(mode="after")
    def validate_times(self):
        _check_time_order(self.new_start_time, self.new_end_time)
        return self


class BookingResponse(IDSchema, TimestampSchema):
    """Booking response schema"""
    user_id: UUID
    venue_id: UUID
    event_date: date
    start_time: str
    end_time: str
    event_type: EventType
    guest_count: int
    contact_name: str
    contact_phone: str
    contact_email: str
    special_requests: Optional[str] = None
    total_amount: Money
    advance_paid: Money
    balance_amount: Money
    status: BookingStatus
    payment_status: BookingPaymentStatus
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[Money] = None
    refund_percentage: Optional[int] = None
    version: int


class RefundEstimateResponse(BaseSchema):
    booking_id: UUID
    paid_amount: Money
    refund_amount: Money
    refund_percentage: int
    message: str
    cancellation_policy: CancellationPolicySchema


class BookedSlot(BaseSchema):
    start_time: str
    end_time: str
    status: BookingStatus


class AvailabilityResponse(BaseSchema):
    available: bool
    message: Optional[str] = None
    opening_time: str
    closing_time: str
    booked_slots: List[BookedSlot] = []


class BookingFilters(BaseSchema):
    """Query filters shared by the booking listings"""
    status: Optional[BookingStatus] = None
    payment_status: Optional[BookingPaymentStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)

    def conditions(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"page", "limit"}, exclude_none=True)
