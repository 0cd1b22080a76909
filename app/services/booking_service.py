"""
Booking engine: creation, status transitions, reschedule, refunds and deletion
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import db_manager
from app.core.exceptions import (
    NotFoundError,
    ValidationError,
    ConflictError,
    AuthorizationError,
    InvalidStateError,
)
from app.core.locks import slot_locks, slot_key
from app.core.metrics import track_operation, record_status_change
from app.models.booking import (
    Booking,
    BookingStatus,
    BookingPaymentStatus,
    ACTIVE_BOOKING_STATUSES,
    TERMINAL_BOOKING_STATUSES,
)
from app.models.user import User, UserRole
from app.models.venue import Venue
from app.schemas.booking import BookingCreate, BookingStatusUpdate, BookingReschedule, BookingFilters
from app.services.availability import AvailabilityChecker
from app.services.notification_service import notification_dispatcher
from app.services.refund_policy import CancellationPolicy, compute_refund
from app.services.venue_service import VenueService

logger = logging.getLogger(__name__)

SLOT_UNAVAILABLE = "Venue is not available for the selected date and time"

# Status changes an owner or admin may make; CANCELLED and COMPLETED are terminal
ALLOWED_TRANSITIONS: Dict[BookingStatus, Tuple[BookingStatus, ...]] = {
    BookingStatus.PENDING: (BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingStatus.CANCELLED),
    BookingStatus.CONFIRMED: (BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingStatus.CANCELLED),
    BookingStatus.CANCELLED: (),
    BookingStatus.COMPLETED: (),
}


def parse_hour(hhmm: str) -> int:
    return int(hhmm.split(":")[0])


def price_for(start_time: str, end_time: str, price_per_hour: Decimal) -> Decimal:
    """Whole hours only: minutes are not pro-rated"""
    return (parse_hour(end_time) - parse_hour(start_time)) * Decimal(price_per_hour)


def _today() -> date:
    return datetime.now(timezone.utc).date()


class BookingService:
    """
    Owns the Booking state machine. Payment fields are only changed here
    through an owner/admin status update; the payment service applies
    verified payments through its own contract.
    """

    @staticmethod
    async def _load_booking(db: AsyncSession, booking_id: UUID, for_update: bool = False) -> Booking:
        stmt = select(Booking).where(Booking.id == booking_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        booking = await db.scalar(stmt)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    @staticmethod
    def _is_venue_owner(venue: Venue, user: User) -> bool:
        return venue.owner_id == user.id

    @classmethod
    def _ensure_participant(cls, booking: Booking, venue: Venue, user: User, message: str):
        if booking.user_id != user.id and not cls._is_venue_owner(venue, user) and user.role != UserRole.ADMIN:
            raise AuthorizationError(message)

    @classmethod
    async def get_booking(cls, db: AsyncSession, booking_id: UUID, user: User) -> Booking:
        booking = await cls._load_booking(db, booking_id)
        venue = await VenueService.get_venue(db, booking.venue_id)
        cls._ensure_participant(booking, venue, user, "You do not have access to this booking")
        return booking

    @classmethod
    async def create_booking(cls, db: AsyncSession, data: BookingCreate, user: User) -> Booking:
        async with track_operation("create_booking"):
            venue = await VenueService.get_venue(db, data.venue_id)
            if not venue.is_active:
                raise InvalidStateError("This venue is not available for booking")
            if data.event_date < _today():
                raise ValidationError("Event date cannot be in the past", field="eventDate")
            if not venue.min_capacity <= data.guest_count <= venue.max_capacity:
                raise ValidationError(
                    f"Guest count must be between {venue.min_capacity} and {venue.max_capacity}",
                    field="guestCount"
                )

            total_amount = price_for(data.start_time, data.end_time, venue.price_per_hour)

            async with slot_locks.hold(slot_key(venue.id, data.event_date)):
                async with db_manager.transaction(db):
                    available = await AvailabilityChecker.is_available(
                        db, venue.id, data.event_date, data.start_time, data.end_time
                    )
                    if not available:
                        raise ConflictError(SLOT_UNAVAILABLE)

                    booking = Booking(
                        user_id=user.id,
                        status=BookingStatus.PENDING,
                        payment_status=BookingPaymentStatus.UNPAID,
                        total_amount=total_amount,
                        advance_paid=Decimal("0"),
                        balance_amount=total_amount,
                        **data.model_dump(),
                    )
                    db.add(booking)
                    try:
                        await db.flush()
                    except IntegrityError as e:
                        # Storage-level overlap constraint caught a concurrent writer
                        logger.warning(f"Booking insert rejected by constraint: {e.orig}")
                        raise ConflictError(SLOT_UNAVAILABLE)

        logger.info(
            f"Booking {booking.id} created for venue {venue.id} on {booking.event_date} "
            f"{booking.start_time}-{booking.end_time}, total {total_amount}"
        )
        await notification_dispatcher.booking_created(db, booking, venue)
        return booking

    @classmethod
    async def update_status(
        cls,
        db: AsyncSession,
        booking_id: UUID,
        update: BookingStatusUpdate,
        user: User
    ) -> Booking:
        new_status = BookingStatus(update.status) if update.status else None
        new_payment_status = BookingPaymentStatus(update.payment_status) if update.payment_status else None

        async with track_operation("update_booking_status"):
            async with db_manager.transaction(db):
                booking = await cls._load_booking(db, booking_id, for_update=True)
                venue = await VenueService.get_venue(db, booking.venue_id)

                is_booking_user = booking.user_id == user.id
                is_manager = cls._is_venue_owner(venue, user) or user.role == UserRole.ADMIN
                if not is_booking_user and not is_manager:
                    raise AuthorizationError("You do not have permission to update this booking")
                if not is_manager and (new_status != BookingStatus.CANCELLED or new_payment_status):
                    raise AuthorizationError("You can only cancel your own bookings")

                old_status = booking.status
                if new_status and new_status not in ALLOWED_TRANSITIONS[old_status]:
                    raise InvalidStateError(
                        f"Cannot change booking status from {old_status.value} to {new_status.value}"
                    )
                if new_status is None and old_status in TERMINAL_BOOKING_STATUSES:
                    raise InvalidStateError(f"Booking is {old_status.value} and can no longer change")

                now = datetime.now(timezone.utc)
                if new_status == BookingStatus.CANCELLED:
                    quote = compute_refund(
                        booking.event_date, now, booking.advance_paid, CancellationPolicy.for_venue(venue)
                    )
                    booking.cancelled_at = now
                    booking.cancellation_reason = update.cancellation_reason
                    booking.refund_amount = quote.refund_amount
                    booking.refund_percentage = quote.refund_percentage
                if new_status == BookingStatus.CONFIRMED and booking.confirmed_at is None:
                    booking.confirmed_at = now

                if new_status:
                    booking.status = new_status
                if new_payment_status:
                    booking.payment_status = new_payment_status

        if new_status:
            record_status_change(old_status, new_status)
            logger.info(f"Booking {booking.id} status {old_status.value} -> {new_status.value} by {user.id}")
            if new_status != old_status:
                await notification_dispatcher.booking_status_changed(db, booking, venue, new_status)
        return booking

    @classmethod
    async def reschedule(
        cls,
        db: AsyncSession,
        booking_id: UUID,
        data: BookingReschedule,
        user: User
    ) -> Booking:
        async with track_operation("reschedule_booking"):
            booking = await cls._load_booking(db, booking_id)
            if booking.user_id != user.id:
                raise AuthorizationError("You can only reschedule your own bookings")
            if booking.status not in ACTIVE_BOOKING_STATUSES:
                raise InvalidStateError("Cannot reschedule a cancelled or completed booking")
            if data.new_event_date < _today():
                raise ValidationError("Event date cannot be in the past", field="newEventDate")

            async with slot_locks.hold(slot_key(booking.venue_id, data.new_event_date)):
                async with db_manager.transaction(db):
                    booking = await cls._load_booking(db, booking_id, for_update=True)
                    if booking.status not in ACTIVE_BOOKING_STATUSES:
                        raise InvalidStateError("Cannot reschedule a cancelled or completed booking")

                    available = await AvailabilityChecker.is_available(
                        db,
                        booking.venue_id,
                        data.new_event_date,
                        data.new_start_time,
                        data.new_end_time,
                        exclude_booking_id=booking.id,
                    )
                    if not available:
                        raise ConflictError("The new date/time is not available")

                    venue = await VenueService.get_venue(db, booking.venue_id)
                    old_slot = f"{booking.event_date.isoformat()} ({booking.start_time}-{booking.end_time})"
                    new_total = price_for(data.new_start_time, data.new_end_time, venue.price_per_hour)

                    booking.event_date = data.new_event_date
                    booking.start_time = data.new_start_time
                    booking.end_time = data.new_end_time
                    booking.total_amount = new_total
                    # Not clamped: a shorter slot after payment leaves a negative balance owed back
                    booking.balance_amount = new_total - booking.advance_paid
                    try:
                        await db.flush()
                    except IntegrityError as e:
                        logger.warning(f"Reschedule rejected by constraint: {e.orig}")
                        raise ConflictError("The new date/time is not available")

        logger.info(f"Booking {booking.id} rescheduled {old_slot} -> {booking.event_date} "
                    f"({booking.start_time}-{booking.end_time})")
        await notification_dispatcher.booking_rescheduled(db, booking, venue, old_slot)
        return booking

    @classmethod
    async def get_refund_estimate(cls, db: AsyncSession, booking_id: UUID, user: User) -> Dict:
        """What cancelling now would refund; never writes"""
        booking = await cls._load_booking(db, booking_id)
        if booking.user_id != user.id:
            raise AuthorizationError("You can only check refund for your own bookings")

        venue = await VenueService.get_venue(db, booking.venue_id)
        policy = CancellationPolicy.for_venue(venue)
        quote = compute_refund(booking.event_date, datetime.now(timezone.utc), booking.advance_paid, policy)
        return {
            "booking_id": booking.id,
            "paid_amount": booking.advance_paid,
            "refund_amount": quote.refund_amount,
            "refund_percentage": quote.refund_percentage,
            "message": quote.message,
            "cancellation_policy": policy.to_dict(),
        }

    @classmethod
    async def delete_booking(cls, db: AsyncSession, booking_id: UUID, user: User) -> None:
        async with db_manager.transaction(db):
            booking = await cls._load_booking(db, booking_id, for_update=True)
            venue = await VenueService.get_venue(db, booking.venue_id)
            cls._ensure_participant(booking, venue, user, "You do not have permission to delete this booking")

            if booking.status != BookingStatus.PENDING:
                raise InvalidStateError(
                    "Only pending bookings can be deleted. Use cancel status for confirmed bookings."
                )
            await db.delete(booking)
        logger.info(f"Booking {booking_id} deleted by {user.id}")

    @staticmethod
    async def _list(db: AsyncSession, base_condition, filters: BookingFilters) -> Tuple[List[Booking], int]:
        conditions = [base_condition]
        if filters.status:
            conditions.append(Booking.status == filters.status)
        if filters.payment_status:
            conditions.append(Booking.payment_status == filters.payment_status)
        if filters.start_date:
            conditions.append(Booking.event_date >= filters.start_date)
        if filters.end_date:
            conditions.append(Booking.event_date <= filters.end_date)

        total = await db.scalar(select(func.count(Booking.id)).where(*conditions))
        result = await db.execute(
            select(Booking)
            .where(*conditions)
            .order_by(Booking.event_date.desc(), Booking.start_time)
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        return list(result.scalars().all()), total or 0

    @classmethod
    async def list_user_bookings(cls, db: AsyncSession, user: User, filters: BookingFilters):
        return await cls._list(db, Booking.user_id == user.id, filters)

    @classmethod
    async def list_venue_bookings(cls, db: AsyncSession, venue_id: UUID, user: User, filters: BookingFilters):
        venue = await VenueService.get_venue(db, venue_id)
        if not cls._is_venue_owner(venue, user) and user.role != UserRole.ADMIN:
            raise AuthorizationError("You can only view bookings for your own venues")
        return await cls._list(db, Booking.venue_id == venue.id, filters)

    @staticmethod
    async def get_availability(db: AsyncSession, venue_id: UUID, event_date: date) -> Dict:
        venue = await VenueService.get_venue(db, venue_id)
        return await AvailabilityChecker.day_summary(db, venue, event_date)
