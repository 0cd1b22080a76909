"""
In-app notification model
"""

from sqlalchemy import Column, String, ForeignKey, Enum, Text, Boolean, DateTime, JSON, Uuid
import enum

from app.models.base import BaseModel


class NotificationType(str, enum.Enum):
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_COMPLETED = "BOOKING_COMPLETED"
    BOOKING_RESCHEDULED = "BOOKING_RESCHEDULED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    REFUND_REQUESTED = "REFUND_REQUESTED"
    SYSTEM = "SYSTEM"


class Notification(BaseModel):
    """
    Notification shown to a user in the app
    """
    __tablename__ = "notifications"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(
        Enum(NotificationType),
        nullable=False,
        index=True
    )
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime(timezone=True))
    ref_id = Column(Uuid(as_uuid=True))
    ref_model = Column(String(50))
    extra = Column("metadata", JSON)

    def __repr__(self):
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type}, is_read={self.is_read})>"
