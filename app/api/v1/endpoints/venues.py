"""
Venue management endpoints
"""

from typing import Any, List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.security import get_current_user, require_owner
from app.models.user import User
from app.schemas.venue import (
    VenueCreate,
    VenueUpdate,
    VenueResponse,
    BlockDatesRequest,
    CancellationPolicySchema,
)
from app.services.venue_service import VenueService

router = APIRouter()


@router.post("/", response_model=VenueResponse, status_code=status.HTTP_201_CREATED)
async def create_venue(
    venue_data: VenueCreate,
    current_user: User = Depends(require_owner),
    db: AsyncSession = Depends(get_session)
) -> Any:
    return await VenueService.create_venue(db, venue_data, current_user)


@router.get("/mine", response_model=List[VenueResponse])
async def get_my_venues(
    current_user: User = Depends(require_owner),
    db: AsyncSession = Depends(get_session)
) -> Any:
    """Venues owned by the current user"""
    return await VenueService.list_owner_venues(db, current_user.id)


@router.get("/{venue_id}", response_model=VenueResponse)
async def get_venue(
    venue_id: UUID,
    db: AsyncSession = Depends(get_session)
) -> Any:
    return await VenueService.get_venue(db, venue_id)


@router.patch("/{venue_id}", response_model=VenueResponse)
async def update_venue(
    venue_id: UUID,
    venue_data: VenueUpdate,
    current_user: User = Depends(require_owner),
    db: AsyncSession = Depends(get_session)
) -> Any:
    return await VenueService.update_venue(db, venue_id, venue_data, current_user)


@router.put("/{venue_id}/cancellation-policy", response_model=VenueResponse)
async def update_cancellation_policy(
    venue_id: UUID,
    policy: CancellationPolicySchema,
    current_user: User = Depends(require_owner),
    db: AsyncSession = Depends(get_session)
) -> Any:
    return await VenueService.update_cancellation_policy(db, venue_id, policy, current_user)


@router.post("/{venue_id}/block-dates", response_model=VenueResponse)
async def block_dates(
    venue_id: UUID,
    data: BlockDatesRequest,
    current_user: User = Depends(require_owner),
    db: AsyncSession = Depends(get_session)
) -> Any:
    """Close whole days for booking"""
    return await VenueService.block_dates(db, venue_id, data, current_user)


@router.post("/{venue_id}/unblock-dates", response_model=VenueResponse)
async def unblock_dates(
    venue_id: UUID,
    data: BlockDatesRequest,
    current_user: User = Depends(require_owner),
    db: AsyncSession = Depends(get_session)
) -> Any:
    return await VenueService.unblock_dates(db, venue_id, data, current_user)
