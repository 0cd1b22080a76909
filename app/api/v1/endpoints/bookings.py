"""
Booking endpoints
"""

from datetime import date
from typing import Any, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.security import get_current_user
from app.models.booking import BookingStatus, BookingPaymentStatus
from app.models.user import User
from app.schemas.booking import (
    BookingCreate,
    BookingStatusUpdate,
    BookingReschedule,
    BookingResponse,
    BookingFilters,
    RefundEstimateResponse,
    AvailabilityResponse,
)
from app.schemas.response import PaginatedResponse, PaginationMeta, MessageResponse
from app.services.booking_service import BookingService

logger = logging.getLogger(__name__)
router = APIRouter()


def booking_filters(
    status: Optional[BookingStatus] = Query(None),
    payment_status: Optional[BookingPaymentStatus] = Query(None, alias="paymentStatus"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100)
) -> BookingFilters:
    return BookingFilters(
        status=status,
        payment_status=payment_status,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )


def _page(bookings, total: int, filters: BookingFilters) -> PaginatedResponse[BookingResponse]:
    return PaginatedResponse[BookingResponse](
        data=[BookingResponse.model_validate(b) for b in bookings],
        pagination=PaginationMeta.build(filters.page, filters.limit, total),
    )


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session)
) -> Any:
    """
    Request a venue slot. The booking starts PENDING and UNPAID.
    """
    return await BookingService.create_booking(db, booking_data, current_user)


@router.get("/my-bookings", response_model=PaginatedResponse[BookingResponse])
async def get_my_bookings(
    filters: BookingFilters = Depends(booking_filters),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session)
) -> Any:
    bookings, total = await BookingService.list_user_bookings(db, current_user, filters)
    return _page(bookings, total, filters)


@router.get("/venue/{venue_id}", response_model=PaginatedResponse[BookingResponse])
async def get_venue_bookings(
    venue_id: UUID,
    filters: BookingFilters = Depends(booking_filters),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session)
) -> Any:
    """Bookings of one venue, for its owner or an admin"""
    bookings, total = await BookingService.list_venue_bookings(db, venue_id, current_user, filters)
    return _page(bookings, total, filters)


@router.get("/availability/{venue_id}", response_model=AvailabilityResponse)
async def check_availability(
    venue_id: UUID,
    event_date: date = Query(..., alias="date"),
    db: AsyncSession = Depends(get_session)
) -> Any:
    """Opening hours and taken slots of a venue day"""
    return await BookingService.get_availability(db, venue_id, event_date)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session)
) -> Any:
    return await BookingService.get_booking(db, booking_id, current_user)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: UUID,
    update: BookingStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session)
) -> Any:
    """
    Owners and admins move bookings through the lifecycle; the booking's
    own user may only cancel.
    """
    return await BookingService.update_status(db, booking_id, update, current_user)


@router.patch("/{booking_id}/reschedule", response_model=BookingResponse)
async def reschedule_booking(
    booking_id: UUID,
    data: BookingReschedule,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session)
) -> Any:
    return await BookingService.reschedule(db, booking_id, data, current_user)


@router.get("/{booking_id}/refund-estimate", response_model=RefundEstimateResponse)
async def get_refund_estimate(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session)
) -> Any:
    """What cancelling right now would refund. Does not change the booking."""
    return await BookingService.get_refund_estimate(db, booking_id, current_user)


@router.delete("/{booking_id}", response_model=MessageResponse)
async def delete_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session)
) -> Any:
    await BookingService.delete_booking(db, booking_id, current_user)
    return MessageResponse(message="Booking deleted successfully")
