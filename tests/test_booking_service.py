"""
Tests for the booking engine: creation, state machine, reschedule, refunds, deletion
"""

import random
import pytest
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4
from unittest.mock import AsyncMock

from sqlalchemy import select

from app.core.exceptions import (
    NotFoundError,
    ValidationError,
    ConflictError,
    AuthorizationError,
    InvalidStateError,
)
from app.models.booking import Booking, BookingStatus, BookingPaymentStatus, ACTIVE_BOOKING_STATUSES
from app.models.notification import Notification, NotificationType
from app.schemas.booking import BookingCreate, BookingStatusUpdate, BookingReschedule, BookingFilters
from app.services.availability import overlaps, to_minutes
from app.services.booking_service import BookingService, price_for
from app.services.notification_service import notification_dispatcher
from tests.helpers import future_date


@pytest.mark.unit
class TestPricing:

    def test_whole_hours_times_rate(self):
        assert price_for("10:00", "18:00", Decimal("5000")) == Decimal("40000")

    def test_minutes_are_not_pro_rated(self):
        assert price_for("10:30", "12:45", Decimal("1000")) == Decimal("2000")


@pytest.mark.integration
@pytest.mark.asyncio
class TestCreateBooking:

    async def test_creates_pending_unpaid_booking(self, db_session, test_user, test_venue, booking_payload):
        booking = await BookingService.create_booking(db_session, BookingCreate(**booking_payload()), test_user)

        assert booking.status == BookingStatus.PENDING
        assert booking.payment_status == BookingPaymentStatus.UNPAID
        assert booking.total_amount == Decimal("40000")
        assert booking.balance_amount == Decimal("40000")
        assert booking.advance_paid == Decimal("0")
        assert booking.user_id == test_user.id

    async def test_notifies_customer_and_owner(self, db_session, test_user, test_owner, test_venue, booking_payload):
        booking = await BookingService.create_booking(db_session, BookingCreate(**booking_payload()), test_user)

        result = await db_session.execute(
            select(Notification).where(Notification.ref_id == booking.id)
        )
        recipients = {n.user_id for n in result.scalars().all()}
        assert recipients == {test_user.id, test_owner.id}

    async def test_failing_email_does_not_fail_booking(self, db_session, test_user, test_venue, booking_payload, monkeypatch):
        emails = AsyncMock()
        emails.send_booking_confirmation.side_effect = RuntimeError("SendGrid is down")
        monkeypatch.setattr(notification_dispatcher, "emails", emails)

        booking = await BookingService.create_booking(db_session, BookingCreate(**booking_payload()), test_user)

        assert booking.status == BookingStatus.PENDING
        emails.send_booking_confirmation.assert_awaited_once()
        assert await db_session.get(Booking, booking.id) is not None

    async def test_guest_count_above_capacity_states_range(self, db_session, test_user, test_venue, booking_payload):
        with pytest.raises(ValidationError) as exc_info:
            await BookingService.create_booking(
                db_session, BookingCreate(**booking_payload(guest_count=600)), test_user
            )
        assert exc_info.value.message == "Guest count must be between 50 and 500"

    async def test_guest_count_below_capacity(self, db_session, test_user, test_venue, booking_payload):
        with pytest.raises(ValidationError):
            await BookingService.create_booking(
                db_session, BookingCreate(**booking_payload(guest_count=10)), test_user
            )

    async def test_unknown_venue(self, db_session, test_user, booking_payload):
        with pytest.raises(NotFoundError):
            await BookingService.create_booking(
                db_session, BookingCreate(**booking_payload(venue_id=uuid4())), test_user
            )

    async def test_inactive_venue(self, db_session, test_user, test_venue, booking_payload):
        test_venue.is_active = False
        await db_session.commit()

        with pytest.raises(InvalidStateError):
            await BookingService.create_booking(db_session, BookingCreate(**booking_payload()), test_user)

    async def test_past_date_rejected(self, db_session, test_user, test_venue, booking_payload):
        with pytest.raises(ValidationError):
            await BookingService.create_booking(
                db_session, BookingCreate(**booking_payload(event_date=future_date(-1))), test_user
            )

    async def test_overlapping_slot_conflicts(self, db_session, test_user, other_user, test_venue, booking_payload):
        await BookingService.create_booking(db_session, BookingCreate(**booking_payload()), test_user)

        with pytest.raises(ConflictError):
            await BookingService.create_booking(
                db_session,
                BookingCreate(**booking_payload(start_time="17:00", end_time="20:00")),
                other_user
            )

    async def test_adjacent_slot_is_bookable(self, db_session, test_user, other_user, test_venue, booking_payload):
        await BookingService.create_booking(
            db_session, BookingCreate(**booking_payload(start_time="10:00", end_time="12:00")), test_user
        )
        second = await BookingService.create_booking(
            db_session, BookingCreate(**booking_payload(start_time="12:00", end_time="14:00")), other_user
        )
        assert second.total_amount == Decimal("10000")

    async def test_randomized_bookings_never_overlap(self, db_session, test_user, test_venue, booking_payload):
        rng = random.Random(20240601)
        day = future_date(45)

        for _ in range(30):
            start = rng.randint(0, 22)
            end = rng.randint(start + 1, 23)
            try:
                await BookingService.create_booking(
                    db_session,
                    BookingCreate(**booking_payload(
                        event_date=day, start_time=f"{start:02d}:00", end_time=f"{end:02d}:00"
                    )),
                    test_user
                )
            except ConflictError:
                # The rollback expired the fixtures
                await db_session.refresh(test_user)

        result = await db_session.execute(
            select(Booking).where(Booking.event_date == day, Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        )
        slots = [(to_minutes(b.start_time), to_minutes(b.end_time)) for b in result.scalars().all()]
        assert slots
        for i, a in enumerate(slots):
            for b in slots[i + 1:]:
                assert not overlaps(a[0], a[1], b[0], b[1])


@pytest.mark.integration
@pytest.mark.asyncio
class TestUpdateStatus:

    async def test_owner_confirms(self, db_session, test_owner, make_booking):
        booking = await make_booking()

        version = booking.version

        updated = await BookingService.update_status(
            db_session, booking.id, BookingStatusUpdate(status=BookingStatus.CONFIRMED), test_owner
        )

        assert updated.status == BookingStatus.CONFIRMED
        assert updated.confirmed_at is not None
        assert updated.version == version + 1

    async def test_admin_completes(self, db_session, test_admin, make_booking):
        booking = await make_booking(status=BookingStatus.CONFIRMED)

        updated = await BookingService.update_status(
            db_session, booking.id, BookingStatusUpdate(status=BookingStatus.COMPLETED), test_admin
        )
        assert updated.status == BookingStatus.COMPLETED

    async def test_customer_may_only_cancel(self, db_session, test_user, make_booking):
        booking = await make_booking()

        with pytest.raises(AuthorizationError):
            await BookingService.update_status(
                db_session, booking.id, BookingStatusUpdate(status=BookingStatus.CONFIRMED), test_user
            )

    async def test_customer_cannot_change_payment_status(self, db_session, test_user, make_booking):
        booking = await make_booking()

        with pytest.raises(AuthorizationError):
            await BookingService.update_status(
                db_session,
                booking.id,
                BookingStatusUpdate(status=BookingStatus.CANCELLED, payment_status=BookingPaymentStatus.PAID),
                test_user
            )

    async def test_stranger_is_forbidden(self, db_session, other_user, make_booking):
        booking = await make_booking()

        with pytest.raises(AuthorizationError):
            await BookingService.update_status(
                db_session, booking.id, BookingStatusUpdate(status=BookingStatus.CANCELLED), other_user
            )

    async def test_cancel_stamps_refund_from_advance(self, db_session, test_user, make_booking):
        booking = await make_booking(
            event_date=future_date(30),
            advance_paid=Decimal("10000"),
            balance_amount=Decimal("30000"),
            payment_status=BookingPaymentStatus.PARTIAL,
        )

        cancelled = await BookingService.update_status(
            db_session,
            booking.id,
            BookingStatusUpdate(status=BookingStatus.CANCELLED, cancellation_reason="Plans changed"),
            test_user
        )

        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        assert cancelled.cancellation_reason == "Plans changed"
        assert cancelled.refund_percentage == 100
        assert cancelled.refund_amount == Decimal("10000")

    async def test_cancel_the_day_before_refunds_nothing(self, db_session, test_user, make_booking):
        booking = await make_booking(event_date=future_date(1), advance_paid=Decimal("10000"))

        cancelled = await BookingService.update_status(
            db_session, booking.id, BookingStatusUpdate(status=BookingStatus.CANCELLED), test_user
        )

        # Under 24 hours to midnight UTC of tomorrow
        assert cancelled.refund_percentage == 0
        assert cancelled.refund_amount == Decimal("0")

    @pytest.mark.parametrize("terminal", [BookingStatus.CANCELLED, BookingStatus.COMPLETED])
    async def test_terminal_states_do_not_move(self, db_session, test_owner, make_booking, terminal):
        booking = await make_booking(status=terminal)
        booking_id = booking.id

        with pytest.raises(InvalidStateError):
            await BookingService.update_status(
                db_session, booking_id, BookingStatusUpdate(status=BookingStatus.CONFIRMED), test_owner
            )

        db_session.expunge_all()
        reloaded = await db_session.get(Booking, booking_id)
        assert reloaded.status == terminal

    async def test_owner_updates_payment_status_only(self, db_session, test_owner, make_booking):
        booking = await make_booking()

        updated = await BookingService.update_status(
            db_session, booking.id, BookingStatusUpdate(payment_status=BookingPaymentStatus.PARTIAL), test_owner
        )

        assert updated.status == BookingStatus.PENDING
        assert updated.payment_status == BookingPaymentStatus.PARTIAL

    async def test_missing_booking(self, db_session, test_owner):
        with pytest.raises(NotFoundError):
            await BookingService.update_status(
                db_session, uuid4(), BookingStatusUpdate(status=BookingStatus.CONFIRMED), test_owner
            )


@pytest.mark.integration
@pytest.mark.asyncio
class TestReschedule:

    async def test_moves_slot_and_reprices(self, db_session, test_user, make_booking):
        booking = await make_booking(advance_paid=Decimal("10000"), balance_amount=Decimal("30000"))
        new_day = future_date(40)

        moved = await BookingService.reschedule(
            db_session,
            booking.id,
            BookingReschedule(new_event_date=new_day, new_start_time="09:00", new_end_time="13:00"),
            test_user
        )

        assert moved.event_date == new_day
        assert (moved.start_time, moved.end_time) == ("09:00", "13:00")
        assert moved.total_amount == Decimal("20000")
        assert moved.balance_amount == Decimal("10000")

    async def test_balance_is_not_clamped(self, db_session, test_user, make_booking):
        booking = await make_booking(
            advance_paid=Decimal("40000"),
            balance_amount=Decimal("0"),
            payment_status=BookingPaymentStatus.PAID,
        )

        moved = await BookingService.reschedule(
            db_session,
            booking.id,
            BookingReschedule(new_event_date=future_date(40), new_start_time="10:00", new_end_time="12:00"),
            test_user
        )

        assert moved.total_amount == Decimal("10000")
        assert moved.balance_amount == Decimal("-30000")

    async def test_own_slot_is_excluded(self, db_session, test_user, make_booking):
        day = future_date()
        booking = await make_booking(event_date=day, start_time="10:00", end_time="18:00")

        moved = await BookingService.reschedule(
            db_session,
            booking.id,
            BookingReschedule(new_event_date=day, new_start_time="11:00", new_end_time="19:00"),
            test_user
        )
        assert moved.start_time == "11:00"

    async def test_conflict_with_other_booking(self, db_session, test_user, other_user, make_booking):
        day = future_date()
        booking = await make_booking(event_date=day, start_time="08:00", end_time="10:00")
        await make_booking(user_id=other_user.id, event_date=day, start_time="12:00", end_time="16:00")

        with pytest.raises(ConflictError) as exc_info:
            await BookingService.reschedule(
                db_session,
                booking.id,
                BookingReschedule(new_event_date=day, new_start_time="11:00", new_end_time="13:00"),
                test_user
            )
        assert exc_info.value.message == "The new date/time is not available"

    async def test_only_booking_user(self, db_session, test_owner, make_booking):
        booking = await make_booking()

        with pytest.raises(AuthorizationError):
            await BookingService.reschedule(
                db_session,
                booking.id,
                BookingReschedule(new_event_date=future_date(40), new_start_time="10:00", new_end_time="12:00"),
                test_owner
            )

    async def test_cancelled_booking(self, db_session, test_user, make_booking):
        booking = await make_booking(status=BookingStatus.CANCELLED)

        with pytest.raises(InvalidStateError):
            await BookingService.reschedule(
                db_session,
                booking.id,
                BookingReschedule(new_event_date=future_date(40), new_start_time="10:00", new_end_time="12:00"),
                test_user
            )

    async def test_notifies_both_parties(self, db_session, test_user, test_owner, make_booking):
        booking = await make_booking()

        await BookingService.reschedule(
            db_session,
            booking.id,
            BookingReschedule(new_event_date=future_date(40), new_start_time="10:00", new_end_time="12:00"),
            test_user
        )

        result = await db_session.execute(
            select(Notification).where(Notification.type == NotificationType.BOOKING_RESCHEDULED)
        )
        notifications = result.scalars().all()
        assert {n.user_id for n in notifications} == {test_user.id, test_owner.id}
        assert all("->" in n.message for n in notifications)


@pytest.mark.integration
@pytest.mark.asyncio
class TestRefundEstimateAndDeletion:

    async def test_estimate_does_not_mutate(self, db_session, test_user, make_booking):
        booking = await make_booking(event_date=future_date(30), advance_paid=Decimal("8000"))
        version = booking.version

        estimate = await BookingService.get_refund_estimate(db_session, booking.id, test_user)

        assert estimate["paid_amount"] == Decimal("8000")
        assert estimate["refund_percentage"] == 100
        assert estimate["refund_amount"] == Decimal("8000")
        assert estimate["cancellation_policy"]["full_refund_hours"] == 72

        db_session.expunge_all()
        reloaded = await db_session.get(Booking, booking.id)
        assert reloaded.status == BookingStatus.PENDING
        assert reloaded.refund_amount is None
        assert reloaded.version == version

    async def test_estimate_for_own_booking_only(self, db_session, other_user, make_booking):
        booking = await make_booking()

        with pytest.raises(AuthorizationError):
            await BookingService.get_refund_estimate(db_session, booking.id, other_user)

    async def test_delete_pending(self, db_session, test_user, make_booking):
        booking = await make_booking()
        booking_id = booking.id

        await BookingService.delete_booking(db_session, booking_id, test_user)

        db_session.expunge_all()
        assert await db_session.get(Booking, booking_id) is None

    async def test_confirmed_must_be_cancelled_not_deleted(self, db_session, test_user, make_booking):
        booking = await make_booking(
            status=BookingStatus.CONFIRMED,
            event_date=future_date(10),
            advance_paid=Decimal("10000"),
        )
        booking_id = booking.id

        with pytest.raises(InvalidStateError) as exc_info:
            await BookingService.delete_booking(db_session, booking_id, test_user)
        assert exc_info.value.message.startswith("Only pending bookings can be deleted")
        await db_session.refresh(test_user)

        estimate = await BookingService.get_refund_estimate(db_session, booking_id, test_user)
        assert estimate["refund_amount"] == Decimal("10000")

        cancelled = await BookingService.update_status(
            db_session, booking_id, BookingStatusUpdate(status=BookingStatus.CANCELLED), test_user
        )
        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.refund_amount == estimate["refund_amount"]

    async def test_stranger_cannot_delete(self, db_session, other_user, make_booking):
        booking = await make_booking()

        with pytest.raises(AuthorizationError):
            await BookingService.delete_booking(db_session, booking.id, other_user)


@pytest.mark.integration
@pytest.mark.asyncio
class TestListings:

    async def test_user_bookings_with_filters(self, db_session, test_user, make_booking):
        await make_booking(event_date=future_date(10))
        await make_booking(event_date=future_date(20), status=BookingStatus.CONFIRMED)
        await make_booking(event_date=future_date(30), status=BookingStatus.CANCELLED)

        bookings, total = await BookingService.list_user_bookings(
            db_session, test_user, BookingFilters(status=BookingStatus.CONFIRMED)
        )
        assert total == 1
        assert bookings[0].status == BookingStatus.CONFIRMED

        bookings, total = await BookingService.list_user_bookings(
            db_session, test_user, BookingFilters(end_date=future_date(20), limit=1)
        )
        assert total == 2
        assert len(bookings) == 1
        # Newest event first
        assert bookings[0].event_date == future_date(20)

    async def test_venue_bookings_for_owner_only(self, db_session, test_owner, other_user, test_venue, make_booking):
        await make_booking()

        bookings, total = await BookingService.list_venue_bookings(db_session, test_venue.id, test_owner, BookingFilters())
        assert total == 1

        with pytest.raises(AuthorizationError):
            await BookingService.list_venue_bookings(db_session, test_venue.id, other_user, BookingFilters())
