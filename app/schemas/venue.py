"""
Venue schemas
"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from app.schemas.base import BaseSchema, IDSchema, TimestampSchema, Money, TIME_PATTERN


class CancellationPolicySchema(BaseSchema):
    """Refund tiers keyed by hours before the event"""
    full_refund_hours: int = Field(72, ge=0)
    partial_refund_hours: int = Field(24, ge=0)
    partial_refund_percentage: int = Field(50, ge=0, le=100)
    no_refund_hours: int = Field(0, ge=0)

    @model_validator(mode="after")
    def validate_ordering(self):
        if not (self.full_refund_hours >= self.partial_refund_hours >= self.no_refund_hours >= 0):
            raise ValueError("fullRefundHours >= partialRefundHours >= noRefundHours >= 0 must hold")
        return self


class VenueBase(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1, max_length=100)
    min_capacity: int = Field(1, ge=1)
    max_capacity: int = Field(..., ge=1)
    price_per_hour: Money = Field(..., ge=0)
    opening_time: str = Field("08:00", pattern=TIME_PATTERN)
    closing_time: str = Field("22:00", pattern=TIME_PATTERN)


class VenueCreate(VenueBase):
    """Venue creation schema"""
    cancellation_policy: Optional[CancellationPolicySchema] = None

    @model_validator(mode="after")
    def validate_ranges(self):
        if self.min_capacity > self.max_capacity:
            raise ValueError("minCapacity cannot exceed maxCapacity")
        if self.closing_time <= self.opening_time:
            raise ValueError("closingTime must be after openingTime")
        return self


class VenueUpdate(BaseSchema):
    """Partial venue update; capacity and hour ranges are re-checked against stored values"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    min_capacity: Optional[int] = Field(None, ge=1)
    max_capacity: Optional[int] = Field(None, ge=1)
    price_per_hour: Optional[Money] = Field(None, ge=0)
    opening_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    closing_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    is_active: Optional[bool] = None


class BlockDatesRequest(BaseSchema):
    dates: List[date] = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=255)


class VenueResponse(IDSchema, TimestampSchema, VenueBase):
    """Venue response schema"""
    owner_id: UUID
    is_active: bool
    cancellation_policy: CancellationPolicySchema
    blocked_dates: List[date] = []

    @field_validator("blocked_dates", mode="before")
    @classmethod
    def flatten_blocked_dates(cls, v):
        return [getattr(entry, "blocked_date", entry) for entry in v or []]

    @model_validator(mode="before")
    @classmethod
    def policy_from_columns(cls, data):
        # ORM rows keep the policy as four columns
        if not isinstance(data, dict) and hasattr(data, "full_refund_hours"):
            return {
                **{column.name: getattr(data, column.name) for column in data.__table__.columns},
                "blocked_dates": data.blocked_dates,
                "cancellation_policy": {
                    "full_refund_hours": data.full_refund_hours,
                    "partial_refund_hours": data.partial_refund_hours,
                    "partial_refund_percentage": data.partial_refund_percentage,
                    "no_refund_hours": data.no_refund_hours,
                },
            }
        return data
