"""
Booking model
"""

from sqlalchemy import (
    Column, String, ForeignKey, Enum, Numeric, DateTime, Date, Integer, Text, Uuid,
    CheckConstraint, Index
)
import enum

from app.models.base import BaseModel


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class BookingPaymentStatus(str, enum.Enum):
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


class EventType(str, enum.Enum):
    WEDDING = "WEDDING"
    BIRTHDAY = "BIRTHDAY"
    CORPORATE = "CORPORATE"
    ANNIVERSARY = "ANNIVERSARY"
    ENGAGEMENT = "ENGAGEMENT"
    RECEPTION = "RECEPTION"
    CONFERENCE = "CONFERENCE"
    SEMINAR = "SEMINAR"
    OTHER = "OTHER"


# Statuses that hold a slot on the venue calendar
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)
TERMINAL_BOOKING_STATUSES = (BookingStatus.CANCELLED, BookingStatus.COMPLETED)


class Booking(BaseModel):
    """
    A venue reserved for one time range on one calendar day
    """
    __tablename__ = "bookings"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    venue_id = Column(Uuid(as_uuid=True), ForeignKey("venues.id"), nullable=False, index=True)
    event_date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    event_type = Column(Enum(EventType), default=EventType.OTHER, nullable=False)
    guest_count = Column(Integer, nullable=False)

    contact_name = Column(String(255), nullable=False)
    contact_phone = Column(String(20), nullable=False)
    contact_email = Column(String(255), nullable=False)
    special_requests = Column(Text)

    total_amount = Column(Numeric(12, 2), nullable=False)
    # Running amount paid so far, across ADVANCE, FULL and BALANCE payments
    advance_paid = Column(Numeric(12, 2), nullable=False, default=0)
    balance_amount = Column(Numeric(12, 2), nullable=False)

    status = Column(
        Enum(BookingStatus),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True
    )
    payment_status = Column(
        Enum(BookingPaymentStatus),
        default=BookingPaymentStatus.UNPAID,
        nullable=False,
        index=True
    )

    confirmed_at = Column(DateTime(timezone=True))
    cancelled_at = Column(DateTime(timezone=True))
    cancellation_reason = Column(Text)
    refund_amount = Column(Numeric(12, 2))
    refund_percentage = Column(Integer)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_bookings_venue_date_status", "venue_id", "event_date", "status"),
        CheckConstraint("end_time > start_time", name="ck_booking_time_order"),
        CheckConstraint("guest_count > 0", name="ck_booking_guest_count"),
        CheckConstraint("total_amount >= 0", name="ck_booking_total_positive"),
    )

    def __repr__(self):
        return (
            f"<Booking(id={self.id}, venue_id={self.venue_id}, date={self.event_date}, "
            f"{self.start_time}-{self.end_time}, status={self.status})>"
        )
