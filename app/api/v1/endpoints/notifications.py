"""
In-app notification endpoints
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.security import get_current_user
from app.models.user import User
from app.schemas.notification import NotificationResponse, UnreadCountResponse, MarkAllReadResponse
from app.schemas.response import PaginatedResponse, PaginationMeta
from app.services.notification_service import NotificationService

router = APIRouter()


@router.get("/", response_model=PaginatedResponse[NotificationResponse])
async def get_notifications(
    unread_only: bool = Query(False, alias="unreadOnly", description="Filter for unread notifications only"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session)
) -> Any:
    """Get user's notifications, newest first"""
    notifications, total = await NotificationService.list_for_user(
        db, current_user.id, unread_only=unread_only, page=page, limit=limit
    )
    return PaginatedResponse[NotificationResponse](
        data=[NotificationResponse.model_validate(n) for n in notifications],
        pagination=PaginationMeta.build(page, limit, total),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session)
) -> Any:
    return {"count": await NotificationService.unread_count(db, current_user.id)}


@router.patch("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session)
) -> Any:
    return {"updated": await NotificationService.mark_all_read(db, current_user.id)}


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session)
) -> Any:
    return await NotificationService.mark_read(db, notification_id, current_user.id)
