"""
Pydantic schemas for request and response validation
"""

from app.schemas.booking import (
    BookingCreate,
    BookingStatusUpdate,
    BookingReschedule,
    BookingResponse,
    RefundEstimateResponse,
    AvailabilityResponse,
)
from app.schemas.payment import (
    PaymentInitiate,
    PaymentInitiateResponse,
    PaymentResponse,
    VerificationResponse,
    RefundRequest,
    RefundResponse,
    EarningsResponse,
)
from app.schemas.venue import (
    VenueCreate,
    VenueUpdate,
    VenueResponse,
    CancellationPolicySchema,
)
from app.schemas.response import (
    ErrorResponse,
    MessageResponse,
    PaginatedResponse
)

__all__ = [
    "BookingCreate",
    "BookingStatusUpdate",
    "BookingReschedule",
    "BookingResponse",
    "RefundEstimateResponse",
    "AvailabilityResponse",
    "PaymentInitiate",
    "PaymentInitiateResponse",
    "PaymentResponse",
    "VerificationResponse",
    "RefundRequest",
    "RefundResponse",
    "EarningsResponse",
    "VenueCreate",
    "VenueUpdate",
    "VenueResponse",
    "CancellationPolicySchema",
    "ErrorResponse",
    "MessageResponse",
    "PaginatedResponse",
]
