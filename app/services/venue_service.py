"""
Venue directory: ownership, blocked dates and cancellation policy
"""

from typing import List
from uuid import UUID
import logging

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import db_manager
from app.core.exceptions import NotFoundError, AuthorizationError, ValidationError
from app.models.user import User, UserRole
from app.models.venue import Venue, VenueBlockedDate
from app.schemas.venue import VenueCreate, VenueUpdate, BlockDatesRequest, CancellationPolicySchema

logger = logging.getLogger(__name__)


class VenueService:

    @staticmethod
    async def get_venue(db: AsyncSession, venue_id: UUID) -> Venue:
        venue = await db.scalar(select(Venue).where(Venue.id == venue_id))
        if not venue:
            raise NotFoundError("Venue", venue_id)
        return venue

    @staticmethod
    def ensure_can_manage(venue: Venue, user: User):
        if user.role != UserRole.ADMIN and venue.owner_id != user.id:
            raise AuthorizationError("You can only manage your own venues")

    @staticmethod
    async def create_venue(db: AsyncSession, data: VenueCreate, owner: User) -> Venue:
        policy = data.cancellation_policy or CancellationPolicySchema()
        venue = Venue(
            owner_id=owner.id,
            **data.model_dump(exclude={"cancellation_policy"}),
            **policy.model_dump(),
            blocked_dates=[],
        )
        async with db_manager.transaction(db):
            db.add(venue)
        logger.info(f"Venue {venue.id} created by owner {owner.id}")
        return venue

    @staticmethod
    async def list_owner_venues(db: AsyncSession, owner_id: UUID) -> List[Venue]:
        result = await db.execute(
            select(Venue).where(Venue.owner_id == owner_id).order_by(Venue.name)
        )
        return list(result.scalars().all())

    @classmethod
    async def update_venue(cls, db: AsyncSession, venue_id: UUID, data: VenueUpdate, user: User) -> Venue:
        async with db_manager.transaction(db):
            venue = await cls.get_venue(db, venue_id)
            cls.ensure_can_manage(venue, user)

            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(venue, field, value)

            if venue.min_capacity > venue.max_capacity:
                raise ValidationError("minCapacity cannot exceed maxCapacity", field="minCapacity")
            if venue.closing_time <= venue.opening_time:
                raise ValidationError("closingTime must be after openingTime", field="closingTime")
        return venue

    @classmethod
    async def update_cancellation_policy(
        cls,
        db: AsyncSession,
        venue_id: UUID,
        policy: CancellationPolicySchema,
        user: User
    ) -> Venue:
        async with db_manager.transaction(db):
            venue = await cls.get_venue(db, venue_id)
            cls.ensure_can_manage(venue, user)
            for field, value in policy.model_dump().items():
                setattr(venue, field, value)
        logger.info(f"Cancellation policy of venue {venue_id} updated: {policy.model_dump()}")
        return venue

    @classmethod
    async def block_dates(cls, db: AsyncSession, venue_id: UUID, data: BlockDatesRequest, user: User) -> Venue:
        async with db_manager.transaction(db):
            venue = await cls.get_venue(db, venue_id)
            cls.ensure_can_manage(venue, user)
            already_blocked = venue.blocked_date_set
            for blocked_date in sorted(set(data.dates) - already_blocked):
                venue.blocked_dates.append(
                    VenueBlockedDate(blocked_date=blocked_date, reason=data.reason)
                )
        return venue

    @classmethod
    async def unblock_dates(cls, db: AsyncSession, venue_id: UUID, data: BlockDatesRequest, user: User) -> Venue:
        async with db_manager.transaction(db):
            venue = await cls.get_venue(db, venue_id)
            cls.ensure_can_manage(venue, user)
            await db.execute(
                delete(VenueBlockedDate).where(
                    VenueBlockedDate.venue_id == venue.id,
                    VenueBlockedDate.blocked_date.in_(data.dates)
                )
            )
        # The bulk delete bypasses the loaded collection
        await db.refresh(venue, attribute_names=["blocked_dates"])
        return venue
