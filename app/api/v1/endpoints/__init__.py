"""
API endpoints module
"""

from . import bookings, venues, health, payment, notifications

__all__ = [
    "bookings",
    "venues",
    "health",
    "payment",
    "notifications"
]
