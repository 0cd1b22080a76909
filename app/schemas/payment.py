"""
Payment schemas
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.models.payment import PaymentGateway, PaymentStatus, PaymentType
from app.schemas.base import BaseSchema, IDSchema, TimestampSchema, Money


def _upper(value):
    return value.upper() if isinstance(value, str) else value


class PaymentInitiate(BaseSchema):
    """Payment initiation request"""
    booking_id: UUID
    amount: Money = Field(..., gt=0)
    gateway: PaymentGateway
    payment_type: PaymentType

    @field_validator("gateway", "payment_type", mode="before")
    @classmethod
    def normalize_case(cls, v):
        return _upper(v)

    @field_validator("payment_type")
    @classmethod
    def reject_refund_type(cls, v):
        if v == PaymentType.REFUND:
            raise ValueError("REFUND payments are created through the refund endpoint")
        return v


class PaymentInitiateResponse(BaseSchema):
    """Gateway-specific data the client needs to complete the payment"""
    payment_id: UUID
    reference_id: str
    gateway: PaymentGateway
    amount: Money
    payment_url: Optional[str] = None
    form_data: Optional[Dict[str, str]] = None
    pidx: Optional[str] = None
    mock: bool = False


class PaymentResponse(IDSchema, TimestampSchema):
    booking_id: UUID
    user_id: UUID
    venue_id: UUID
    amount: Money
    gateway: PaymentGateway
    payment_type: PaymentType
    status: PaymentStatus
    reference_id: str
    transaction_id: Optional[str] = None
    gateway_token: Optional[str] = None
    gateway_response: Optional[Dict[str, Any]] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    original_payment_id: Optional[UUID] = None
    refund_reason: Optional[str] = None


class VerificationResponse(BaseSchema):
    success: bool
    message: str
    already_verified: bool = False
    payment: PaymentResponse


class EsewaVerifyRequest(BaseSchema):
    data: str = Field(..., min_length=1)


class KhaltiVerifyRequest(BaseSchema):
    pidx: str = Field(..., min_length=1)


class RefundRequest(BaseSchema):
    reason: str = Field(..., min_length=1, max_length=1000)


class RefundResponse(BaseSchema):
    message: str
    refund: PaymentResponse


class MonthlyEarning(BaseSchema):
    year: int
    month: int
    earnings: Money
    transactions: int


class VenueEarning(BaseSchema):
    venue_id: UUID
    venue_name: str
    earnings: Money
    transactions: int


class EarningsResponse(BaseSchema):
    total_earnings: Money
    total_refunds: Money
    platform_fee: Money
    platform_fee_percentage: float
    net_earnings: Money
    total_transactions: int
    average_transaction: Money
    monthly: List[MonthlyEarning] = []
    by_venue: List[VenueEarning] = []
