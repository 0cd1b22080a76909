"""
Notification schemas
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import Field

from app.models.notification import NotificationType
from app.schemas.base import BaseSchema, IDSchema, TimestampSchema


class NotificationResponse(IDSchema, TimestampSchema):
    user_id: UUID
    title: str
    message: str
    type: NotificationType
    is_read: bool
    read_at: Optional[datetime] = None
    ref_id: Optional[UUID] = None
    ref_model: Optional[str] = None
    extra: Optional[Dict[str, Any]] = Field(None, serialization_alias="metadata")


class UnreadCountResponse(BaseSchema):
    count: int


class MarkAllReadResponse(BaseSchema):
    updated: int
