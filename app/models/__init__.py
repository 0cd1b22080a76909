"""
Database models
"""

from app.models.user import User, UserRole
from app.models.venue import Venue, VenueBlockedDate
from app.models.booking import Booking, BookingStatus, BookingPaymentStatus, EventType
from app.models.payment import Payment, PaymentGateway, PaymentType, PaymentStatus
from app.models.notification import Notification, NotificationType

__all__ = [
    "User",
    "UserRole",
    "Venue",
    "VenueBlockedDate",
    "Booking",
    "BookingStatus",
    "BookingPaymentStatus",
    "EventType",
    "Payment",
    "PaymentGateway",
    "PaymentType",
    "PaymentStatus",
    "Notification",
    "NotificationType",
]
