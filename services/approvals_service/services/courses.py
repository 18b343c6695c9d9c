"""Course access requests, completion and lesson notes."""

import uuid
from typing import Optional

from libs.auth.models import Actor
from libs.common.datetime_utils import utc_now
from libs.common.error_handler import ApiError, ErrorCode
from libs.common.logging import get_logger
from services.approvals_service.kinds import KINDS
from services.approvals_service.models import (
    ApprovalStatus,
    CourseAccess,
    CourseNote,
    ResourceKind,
)
from services.approvals_service.services import workflow
from services.approvals_service.services.learning_status import OPEN_STATUSES
from services.approvals_service.services.sequencing import (
    require_prerequisite,
    validate_course_id,
)
from services.communications_service.services.dispatcher import NotificationDispatcher
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

DRAFT_SAVED = "draft_saved"


async def get_course_access(
    db: AsyncSession, user_id: uuid.UUID, course_id: int
) -> Optional[CourseAccess]:
    result = await db.execute(
        select(CourseAccess).where(
            CourseAccess.user_id == user_id, CourseAccess.course_id == course_id
        )
    )
    return result.scalar_one_or_none()


async def require_open_access(
    db: AsyncSession, user_id: uuid.UUID, course_id: int
) -> CourseAccess:
    access = await get_course_access(db, user_id, course_id)
    if access is None:
        raise ApiError(ErrorCode.NO_ACCESS)
    if access.status not in OPEN_STATUSES:
        raise ApiError(ErrorCode.NOT_APPROVED)
    return access


async def request_course_access(
    db: AsyncSession,
    actor: Actor,
    course_id: int,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> workflow.SubmitResult:
    validate_course_id(course_id)
    await require_prerequisite(db, actor.id, course_id)
    return await workflow.submit(
        db,
        KINDS[ResourceKind.COURSE_ACCESS],
        actor,
        key={"course_id": course_id},
        dispatcher=dispatcher,
    )


async def complete_course(
    db: AsyncSession, actor: Actor, course_id: int
) -> CourseAccess:
    """Mark an approved course completed. Completing twice is a no-op."""
    validate_course_id(course_id)
    access = await require_open_access(db, actor.id, course_id)
    if access.status == ApprovalStatus.COMPLETED:
        return access

    now = utc_now()
    result = await db.execute(
        update(CourseAccess)
        .where(
            CourseAccess.id == access.id,
            CourseAccess.status == ApprovalStatus.APPROVED,
        )
        .values(status=ApprovalStatus.COMPLETED, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(access)
    if result.rowcount != 1 and access.status != ApprovalStatus.COMPLETED:
        raise ApiError(ErrorCode.NOT_APPROVED)

    logger.info("Course %s completed by %s", course_id, actor.id)
    return access


async def save_course_note(
    db: AsyncSession,
    actor: Actor,
    course_id: int,
    *,
    content_md: str = "",
    content_html: str = "",
    submit: bool = False,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> workflow.SubmitResult:
    """Save a lesson summary as a draft, or submit it for review.

    Both need approved or completed access to the course. Drafts never
    change status and never notify anyone.
    """
    validate_course_id(course_id)
    await require_open_access(db, actor.id, course_id)

    payload = {"content_md": content_md or "", "content_html": content_html or ""}
    descriptor = KINDS[ResourceKind.COURSE_NOTES]

    if submit:
        if not (payload["content_md"].strip() or payload["content_html"].strip()):
            raise ApiError(ErrorCode.MISSING_CONTENT)
        return await workflow.submit(
            db,
            descriptor,
            actor,
            key={"course_id": course_id},
            payload=payload,
            dispatcher=dispatcher,
        )

    note = await workflow.find_own_item(db, descriptor, actor, {"course_id": course_id})
    if note is None:
        note = CourseNote(
            user_id=actor.id,
            owner_leader_id=actor.leader_id,
            course_id=course_id,
            status=ApprovalStatus.DRAFT,
            **payload,
        )
        db.add(note)
    else:
        note.content_md = payload["content_md"]
        note.content_html = payload["content_html"]
        note.updated_at = utc_now()
    await db.commit()
    await db.refresh(note)
    return workflow.SubmitResult(status=DRAFT_SAVED, item=note)
