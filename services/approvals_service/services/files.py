"""File library access requests."""

import uuid
from typing import Optional

from libs.auth.models import Actor
from libs.common.error_handler import ApiError, ErrorCode
from services.approvals_service.kinds import KINDS
from services.approvals_service.models import (
    FilePermission,
    LibraryFile,
    ResourceKind,
)
from services.approvals_service.services import workflow
from services.communications_service.services.dispatcher import NotificationDispatcher
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def get_library_file(db: AsyncSession, file_id: uuid.UUID) -> LibraryFile:
    file = await db.get(LibraryFile, file_id)
    if file is None or file.deleted_at is not None:
        raise ApiError(ErrorCode.NOT_FOUND)
    return file


async def has_file_permission(
    db: AsyncSession, file_id: uuid.UUID, user_id: uuid.UUID
) -> bool:
    granted = await db.scalar(
        select(FilePermission.id).where(
            FilePermission.file_id == file_id,
            FilePermission.grantee_user_id == user_id,
        )
    )
    return granted is not None


async def request_file_access(
    db: AsyncSession,
    actor: Actor,
    file_id: uuid.UUID,
    message: Optional[str] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> workflow.SubmitResult:
    await get_library_file(db, file_id)
    return await workflow.submit(
        db,
        KINDS[ResourceKind.FILE_ACCESS_REQUESTS],
        actor,
        key={"file_id": file_id},
        payload={"message": message} if message else {},
        dispatcher=dispatcher,
    )
