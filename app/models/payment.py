"""
Payment model for gateway transactions and refund records
"""

from sqlalchemy import Column, String, Numeric, Enum, DateTime, ForeignKey, Text, JSON, Uuid
import enum

from app.models.base import BaseModel


class PaymentGateway(str, enum.Enum):
    ESEWA = "ESEWA"
    KHALTI = "KHALTI"


class PaymentType(str, enum.Enum):
    ADVANCE = "ADVANCE"
    FULL = "FULL"
    BALANCE = "BALANCE"
    REFUND = "REFUND"


class PaymentStatus(str, enum.Enum):
    INITIATED = "INITIATED"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Payment(BaseModel):
    """
    One gateway transaction, or a negative-amount REFUND record pointing at
    the payment it reverses
    """
    __tablename__ = "payments"

    booking_id = Column(Uuid(as_uuid=True), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    venue_id = Column(Uuid(as_uuid=True), ForeignKey("venues.id"), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    gateway = Column(Enum(PaymentGateway), nullable=False)
    payment_type = Column(Enum(PaymentType), nullable=False)
    status = Column(
        Enum(PaymentStatus),
        default=PaymentStatus.INITIATED,
        nullable=False,
        index=True
    )

    reference_id = Column(String(64), unique=True, nullable=False, index=True)
    # Provider-assigned id reported at verification
    transaction_id = Column(String(255))
    # Provider token returned at initiation (Khalti pidx); verification callbacks are matched on it
    gateway_token = Column(String(255), index=True)
    gateway_response = Column(JSON)

    completed_at = Column(DateTime(timezone=True))
    failed_at = Column(DateTime(timezone=True))

    original_payment_id = Column(Uuid(as_uuid=True), ForeignKey("payments.id"), nullable=True)
    refund_reason = Column(Text)

    def __repr__(self):
        return (
            f"<Payment(id={self.id}, reference_id={self.reference_id}, type={self.payment_type}, "
            f"amount={self.amount}, status={self.status})>"
        )
