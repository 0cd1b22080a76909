"""
Venue model
"""

from sqlalchemy import (
    Column, String, Integer, Text, Boolean, Numeric, Date, ForeignKey, Uuid,
    CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship

from app.models.base import BaseModel

DEFAULT_FULL_REFUND_HOURS = 72
DEFAULT_PARTIAL_REFUND_HOURS = 24
DEFAULT_PARTIAL_REFUND_PERCENTAGE = 50
DEFAULT_NO_REFUND_HOURS = 0


class Venue(BaseModel):
    """
    Bookable venue owned by an OWNER user
    """
    __tablename__ = "venues"

    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    address = Column(Text, nullable=False)
    city = Column(String(100), nullable=False, index=True)
    min_capacity = Column(Integer, nullable=False, default=1)
    max_capacity = Column(Integer, nullable=False)
    price_per_hour = Column(Numeric(12, 2), nullable=False)
    opening_time = Column(String(5), nullable=False, default="08:00")
    closing_time = Column(String(5), nullable=False, default="22:00")
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Cancellation policy
    full_refund_hours = Column(Integer, nullable=False, default=DEFAULT_FULL_REFUND_HOURS)
    partial_refund_hours = Column(Integer, nullable=False, default=DEFAULT_PARTIAL_REFUND_HOURS)
    partial_refund_percentage = Column(Integer, nullable=False, default=DEFAULT_PARTIAL_REFUND_PERCENTAGE)
    no_refund_hours = Column(Integer, nullable=False, default=DEFAULT_NO_REFUND_HOURS)

    # Relationships
    blocked_dates = relationship(
        "VenueBlockedDate",
        back_populates="venue",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="VenueBlockedDate.blocked_date",
    )

    __table_args__ = (
        CheckConstraint("min_capacity >= 1 AND min_capacity <= max_capacity", name="ck_venue_capacity_range"),
        CheckConstraint("price_per_hour >= 0", name="ck_venue_price_positive"),
        CheckConstraint(
            "full_refund_hours >= partial_refund_hours "
            "AND partial_refund_hours >= no_refund_hours "
            "AND no_refund_hours >= 0",
            name="ck_venue_policy_order"
        ),
        CheckConstraint(
            "partial_refund_percentage >= 0 AND partial_refund_percentage <= 100",
            name="ck_venue_policy_percentage"
        ),
    )

    @property
    def blocked_date_set(self) -> set:
        return {entry.blocked_date for entry in self.blocked_dates}

    def __repr__(self):
        return f"<Venue(id={self.id}, name={self.name}, city={self.city}, capacity={self.min_capacity}-{self.max_capacity})>"


class VenueBlockedDate(BaseModel):
    """
    Calendar day an owner has closed for bookings
    """
    __tablename__ = "venue_blocked_dates"

    venue_id = Column(Uuid(as_uuid=True), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True)
    blocked_date = Column(Date, nullable=False)
    reason = Column(String(255))

    venue = relationship("Venue", back_populates="blocked_dates")

    __table_args__ = (
        UniqueConstraint("venue_id", "blocked_date", name="uq_venue_blocked_date"),
    )

    def __repr__(self):
        return f"<VenueBlockedDate(venue_id={self.venue_id}, date={self.blocked_date})>"
