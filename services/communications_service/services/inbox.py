"""Read-side and read-marking operations on a user's notification inbox."""

import uuid

from libs.common.datetime_utils import utc_now
from libs.common.error_handler import ApiError, ErrorCode
from services.communications_service.models import Notification
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession


async def list_notifications(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    page: int,
    page_size: int,
    unread_only: bool = False,
) -> tuple[list[Notification], int]:
    filters = [Notification.to_user_id == user_id]
    if unread_only:
        filters.append(Notification.read_at.is_(None))

    total = await db.scalar(
        select(func.count()).select_from(Notification).where(*filters)
    )
    result = await db.execute(
        select(Notification)
        .where(*filters)
        .order_by(Notification.created_at.desc(), Notification.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total or 0


async def count_unread(db: AsyncSession, user_id: uuid.UUID) -> int:
    count = await db.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.to_user_id == user_id, Notification.read_at.is_(None))
    )
    return count or 0


async def mark_read(
    db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> int:
    """Mark one notification read. Only the recipient may do so."""
    notification = await db.get(Notification, notification_id)
    if notification is None:
        raise ApiError(ErrorCode.NOT_FOUND)
    if notification.to_user_id != user_id:
        raise ApiError(ErrorCode.FORBIDDEN)
    if notification.read_at is not None:
        return 0

    notification.read_at = utc_now()
    await db.commit()
    return 1


async def mark_all_read(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.to_user_id == user_id, Notification.read_at.is_(None))
        .values(read_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0
