"""
Slot availability checks for venues
"""

from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.booking import Booking, ACTIVE_BOOKING_STATUSES
from app.models.venue import Venue, VenueBlockedDate

logger = logging.getLogger(__name__)


def to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval overlap: touching intervals do not overlap"""
    return start_a < end_b and end_a > start_b


class AvailabilityChecker:
    """
    Reads straight from the database on every call; callers that go on to
    write must hold the venue-day slot lock across check and insert.
    """

    @staticmethod
    async def is_blocked(db: AsyncSession, venue_id: UUID, event_date: date) -> bool:
        blocked = await db.scalar(
            select(VenueBlockedDate.id).where(
                VenueBlockedDate.venue_id == venue_id,
                VenueBlockedDate.blocked_date == event_date
            )
        )
        return blocked is not None

    @staticmethod
    async def active_bookings(
        db: AsyncSession,
        venue_id: UUID,
        event_date: date,
        exclude_booking_id: Optional[UUID] = None
    ) -> List[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.venue_id == venue_id,
                Booking.event_date == event_date,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES)
            )
            .order_by(Booking.start_time)
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @classmethod
    async def is_available(
        cls,
        db: AsyncSession,
        venue_id: UUID,
        event_date: date,
        start_time: str,
        end_time: str,
        exclude_booking_id: Optional[UUID] = None
    ) -> bool:
        if await cls.is_blocked(db, venue_id, event_date):
            logger.debug(f"Venue {venue_id} is blocked on {event_date}")
            return False

        start, end = to_minutes(start_time), to_minutes(end_time)
        for booking in await cls.active_bookings(db, venue_id, event_date, exclude_booking_id):
            if overlaps(start, end, to_minutes(booking.start_time), to_minutes(booking.end_time)):
                logger.debug(
                    f"Slot {start_time}-{end_time} on {event_date} overlaps booking {booking.id}"
                )
                return False
        return True

    @classmethod
    async def day_summary(cls, db: AsyncSession, venue: Venue, event_date: date) -> Dict[str, Any]:
        """Opening hours and already-taken slots for one venue day"""
        summary = {
            "available": True,
            "message": None,
            "opening_time": venue.opening_time,
            "closing_time": venue.closing_time,
            "booked_slots": [],
        }
        if await cls.is_blocked(db, venue.id, event_date):
            summary["available"] = False
            summary["message"] = "Date is blocked by venue owner"
            return summary

        summary["booked_slots"] = [
            {"start_time": b.start_time, "end_time": b.end_time, "status": b.status}
            for b in await cls.active_bookings(db, venue.id, event_date)
        ]
        return summary
