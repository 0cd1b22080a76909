"""
Cancellation refund calculation
"""

from dataclasses import dataclass, asdict
from datetime import date, datetime, time, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from app.models.venue import (
    DEFAULT_FULL_REFUND_HOURS,
    DEFAULT_PARTIAL_REFUND_HOURS,
    DEFAULT_PARTIAL_REFUND_PERCENTAGE,
    DEFAULT_NO_REFUND_HOURS,
)


@dataclass(frozen=True)
class CancellationPolicy:
    full_refund_hours: int = DEFAULT_FULL_REFUND_HOURS
    partial_refund_hours: int = DEFAULT_PARTIAL_REFUND_HOURS
    partial_refund_percentage: int = DEFAULT_PARTIAL_REFUND_PERCENTAGE
    no_refund_hours: int = DEFAULT_NO_REFUND_HOURS

    def __post_init__(self):
        if not (self.full_refund_hours >= self.partial_refund_hours >= self.no_refund_hours >= 0):
            raise ValueError(
                "Cancellation policy must satisfy "
                "fullRefundHours >= partialRefundHours >= noRefundHours >= 0"
            )
        if not 0 <= self.partial_refund_percentage <= 100:
            raise ValueError("partialRefundPercentage must be between 0 and 100")

    @classmethod
    def for_venue(cls, venue) -> "CancellationPolicy":
        """Policy stored on a venue row, falling back to defaults for unset columns"""
        defaults = cls()
        return cls(
            full_refund_hours=_or(venue.full_refund_hours, defaults.full_refund_hours),
            partial_refund_hours=_or(venue.partial_refund_hours, defaults.partial_refund_hours),
            partial_refund_percentage=_or(venue.partial_refund_percentage, defaults.partial_refund_percentage),
            no_refund_hours=_or(venue.no_refund_hours, defaults.no_refund_hours),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class RefundQuote:
    refund_amount: Decimal
    refund_percentage: int
    hours_until_event: float
    message: str


def _or(value: Optional[int], default: int) -> int:
    return default if value is None else value


def event_instant(event_date: date) -> datetime:
    """Bookings are dated, not timed: the event starts at midnight UTC of its day"""
    return datetime.combine(event_date, time.min, tzinfo=timezone.utc)


def compute_refund(
    event_date: date,
    now: datetime,
    advance_paid: Decimal,
    policy: CancellationPolicy
) -> RefundQuote:
    """
    Refund owed if the booking were cancelled at `now`.

    Depends only on its arguments, so estimates and real cancellations agree.
    The refund is rounded to a whole currency unit, halves away from zero.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    hours_until_event = (event_instant(event_date) - now).total_seconds() / 3600

    if hours_until_event >= policy.full_refund_hours:
        percentage = 100
        message = f"Full refund - cancelled more than {policy.full_refund_hours} hours before event"
    elif hours_until_event >= policy.partial_refund_hours:
        percentage = policy.partial_refund_percentage
        message = (
            f"Partial refund ({policy.partial_refund_percentage}%) - "
            f"cancelled within {policy.full_refund_hours} hours of event"
        )
    else:
        percentage = 0
        message = f"No refund - cancelled within {policy.partial_refund_hours} hours of event"

    paid = Decimal(advance_paid or 0)
    refund_amount = (paid * percentage / Decimal(100)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)

    return RefundQuote(
        refund_amount=refund_amount,
        refund_percentage=percentage,
        hours_until_event=hours_until_event,
        message=message,
    )
