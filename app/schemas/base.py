"""
Base Pydantic schemas
"""

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID

# Money is stored as Decimal and rendered as a JSON number
Money = Annotated[Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")]

# Zero-padded 24h clock time
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class BaseSchema(BaseModel):
    """Base schema with common configuration; JSON field names are camelCase"""
    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class TimestampSchema(BaseSchema):
    """Schema with timestamp fields"""
    created_at: datetime
    updated_at: Optional[datetime] = None


class IDSchema(BaseSchema):
    """Schema with ID field"""
    id: UUID
