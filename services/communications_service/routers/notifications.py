"""Notification inbox routes for the signed-in user."""

import uuid

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import get_current_actor
from libs.auth.models import Actor
from libs.common.config import get_settings
from libs.db.session import get_async_db
from services.communications_service.schemas import (
    MarkReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from services.communications_service.services import inbox
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/communications/notifications", tags=["notifications"])
settings = get_settings()


@router.get("", response_model=NotificationListResponse)
async def list_my_notifications(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    unread_only: bool = False,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db),
):
    """List the caller's notifications, newest first."""
    items, total = await inbox.list_notifications(
        db, actor.id, page=page, page_size=page_size, unread_only=unread_only
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db),
):
    return UnreadCountResponse(unread=await inbox.count_unread(db, actor.id))


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_notifications_read(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db),
):
    return MarkReadResponse(updated=await inbox.mark_all_read(db, actor.id))


@router.post("/{notification_id}/read", response_model=MarkReadResponse)
async def mark_notification_read(
    notification_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db),
):
    return MarkReadResponse(
        updated=await inbox.mark_read(db, actor.id, notification_id)
    )
