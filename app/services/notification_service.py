"""
In-app notifications and the best-effort dispatcher used by bookings and payments
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID
import functools
import logging

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import NotFoundError
from app.models.booking import Booking, BookingStatus
from app.models.notification import Notification, NotificationType
from app.models.payment import Payment
from app.models.user import User
from app.models.venue import Venue
from app.services.email_service import EmailService, email_service

logger = logging.getLogger(__name__)


class NotificationService:
    """Persistence of in-app notifications"""

    @staticmethod
    async def notify(
        db: AsyncSession,
        user_id: UUID,
        title: str,
        message: str,
        type: NotificationType,
        ref_id: Optional[UUID] = None,
        ref_model: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            ref_id=ref_id,
            ref_model=ref_model,
            extra=metadata,
        )
        db.add(notification)
        await db.commit()
        return notification

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: UUID,
        unread_only: bool = False,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Notification], int]:
        conditions = [Notification.user_id == user_id]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))

        total = await db.scalar(select(func.count(Notification.id)).where(*conditions))
        result = await db.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    @staticmethod
    async def unread_count(db: AsyncSession, user_id: UUID) -> int:
        count = await db.scalar(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False)
            )
        )
        return count or 0

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: UUID, user_id: UUID) -> Notification:
        result = await db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id
            )
        )
        notification = result.scalar_one_or_none()
        if not notification:
            raise NotFoundError("Notification", notification_id)

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            await db.commit()
        return notification

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: UUID) -> int:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=datetime.now(timezone.utc))
        )
        await db.commit()
        return result.rowcount or 0


def best_effort(func):
    """Side effects must never fail the booking or payment that triggered them"""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            await func(*args, **kwargs)
        except Exception:
            logger.exception(f"Notification dispatch '{func.__name__}' failed")
    return wrapper


def _slot(booking_date, start_time: str, end_time: str) -> str:
    return f"{booking_date.isoformat()} ({start_time}-{end_time})"


class NotificationDispatcher:
    """
    Fans booking and payment events out to in-app notifications and email.

    Runs after the triggering transaction has committed, in a session of its
    own, so a failing sink never touches the caller's unit of work.
    """

    def __init__(self, emails: Optional[EmailService] = None):
        self.emails = emails or email_service

    @staticmethod
    def _session_for(db: AsyncSession) -> AsyncSession:
        return async_sessionmaker(bind=db.bind, expire_on_commit=False)()

    @staticmethod
    async def _users(session: AsyncSession, *user_ids: UUID) -> Dict[UUID, User]:
        result = await session.execute(select(User).where(User.id.in_(user_ids)))
        return {user.id: user for user in result.scalars().all()}

    @best_effort
    async def booking_created(self, db: AsyncSession, booking: Booking, venue: Venue):
        async with self._session_for(db) as session:
            users = await self._users(session, booking.user_id, venue.owner_id)
            slot = _slot(booking.event_date, booking.start_time, booking.end_time)

            await NotificationService.notify(
                session, booking.user_id,
                "Booking request received",
                f"Your booking at {venue.name} on {slot} is pending confirmation.",
                NotificationType.BOOKING_CREATED, booking.id, "Booking",
            )
            await NotificationService.notify(
                session, venue.owner_id,
                "New booking request",
                f"{booking.contact_name} requested {venue.name} on {slot}.",
                NotificationType.BOOKING_CREATED, booking.id, "Booking",
            )

            details = {
                "venue_name": venue.name,
                "venue_address": f"{venue.address}, {venue.city}",
                "event_date": booking.event_date.isoformat(),
                "start_time": booking.start_time,
                "end_time": booking.end_time,
                "event_type": getattr(booking.event_type, "value", booking.event_type),
                "guest_count": booking.guest_count,
                "total_amount": booking.total_amount,
                "booking_id": str(booking.id),
            }
            await self.emails.send_booking_confirmation(booking.contact_email, booking.contact_name, details)

            owner = users.get(venue.owner_id)
            if owner:
                await self.emails.send_new_booking_to_owner(owner.email, owner.full_name, {
                    **details,
                    "customer_name": booking.contact_name,
                    "customer_email": booking.contact_email,
                    "customer_phone": booking.contact_phone,
                    "special_requests": booking.special_requests,
                })

    @best_effort
    async def booking_status_changed(self, db: AsyncSession, booking: Booking, venue: Venue, new_status: BookingStatus):
        type_by_status = {
            BookingStatus.CONFIRMED: NotificationType.BOOKING_CONFIRMED,
            BookingStatus.CANCELLED: NotificationType.BOOKING_CANCELLED,
            BookingStatus.COMPLETED: NotificationType.BOOKING_COMPLETED,
        }
        notification_type = type_by_status.get(new_status)
        if notification_type is None:
            return

        status_label = new_status.value.lower()
        async with self._session_for(db) as session:
            users = await self._users(session, booking.user_id)
            message = f"Your booking at {venue.name} on {booking.event_date.isoformat()} is {status_label}."
            if new_status == BookingStatus.CANCELLED and booking.refund_amount:
                message += f" Refund due: Rs. {booking.refund_amount}."

            await NotificationService.notify(
                session, booking.user_id,
                f"Booking {status_label}",
                message,
                notification_type, booking.id, "Booking",
            )

            user = users.get(booking.user_id)
            if user:
                await self.emails.send_booking_status_update(user.email, user.full_name, new_status.value, {
                    "venue_name": venue.name,
                    "event_date": booking.event_date.isoformat(),
                    "booking_id": str(booking.id),
                    "cancellation_reason": booking.cancellation_reason,
                    "refund_amount": booking.refund_amount if new_status == BookingStatus.CANCELLED else None,
                })

    @best_effort
    async def booking_rescheduled(self, db: AsyncSession, booking: Booking, venue: Venue, old_slot: str):
        new_slot = _slot(booking.event_date, booking.start_time, booking.end_time)
        summary = f"{old_slot} -> {new_slot}"
        async with self._session_for(db) as session:
            users = await self._users(session, booking.user_id, venue.owner_id)
            for user_id in (booking.user_id, venue.owner_id):
                await NotificationService.notify(
                    session, user_id,
                    "Booking rescheduled",
                    f"Booking at {venue.name} moved: {summary}.",
                    NotificationType.BOOKING_RESCHEDULED, booking.id, "Booking",
                    metadata={"from": old_slot, "to": new_slot},
                )
                user = users.get(user_id)
                if user:
                    await self.emails.send_booking_status_update(user.email, user.full_name, "RESCHEDULED", {
                        "venue_name": venue.name,
                        "event_date": summary,
                        "booking_id": str(booking.id),
                    })

    @best_effort
    async def payment_received(self, db: AsyncSession, payment: Payment, booking: Booking):
        async with self._session_for(db) as session:
            users = await self._users(session, payment.user_id)
            await NotificationService.notify(
                session, payment.user_id,
                "Payment received",
                f"Your {payment.payment_type.value.lower()} payment of Rs. {payment.amount} was successful.",
                NotificationType.PAYMENT_RECEIVED, payment.id, "Payment",
            )
            user = users.get(payment.user_id)
            if user:
                await self.emails.send_payment_receipt(user.email, user.full_name, {
                    "payment_type": payment.payment_type.value,
                    "amount": payment.amount,
                    "gateway": payment.gateway.value,
                    "reference_id": payment.reference_id,
                    "balance_amount": booking.balance_amount,
                    "booking_id": str(booking.id),
                })

    @best_effort
    async def payment_failed(self, db: AsyncSession, payment: Payment):
        async with self._session_for(db) as session:
            await NotificationService.notify(
                session, payment.user_id,
                "Payment failed",
                f"Your payment {payment.reference_id} could not be completed.",
                NotificationType.PAYMENT_FAILED, payment.id, "Payment",
            )

    @best_effort
    async def refund_requested(self, db: AsyncSession, refund: Payment):
        async with self._session_for(db) as session:
            await NotificationService.notify(
                session, refund.user_id,
                "Refund requested",
                f"Refund of Rs. {abs(refund.amount)} has been submitted for processing.",
                NotificationType.REFUND_REQUESTED, refund.id, "Payment",
            )


notification_dispatcher = NotificationDispatcher()
