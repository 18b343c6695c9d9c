"""Aggregate learning status, recomputed after a course is opened."""

import uuid
from typing import Optional

from libs.common.config import Settings, get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.approvals_service.models import ApprovalStatus, CourseAccess
from services.members_service.models import Profile, StudentStatus
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

OPEN_STATUSES = (ApprovalStatus.APPROVED, ApprovalStatus.COMPLETED)


async def recompute_learning_status(
    db: AsyncSession,
    user_id: uuid.UUID,
    settings: Optional[Settings] = None,
) -> bool:
    """Move a learner from 普通学员 to 学习中 once enough courses are open.

    Returns True when the profile changed. Other statuses are never touched.
    """
    settings = settings or get_settings()
    open_count = await db.scalar(
        select(func.count())
        .select_from(CourseAccess)
        .where(CourseAccess.user_id == user_id, CourseAccess.status.in_(OPEN_STATUSES))
    )
    if (open_count or 0) < settings.LEARNING_STATUS_MIN_OPEN_COURSES:
        return False

    result = await db.execute(
        update(Profile)
        .where(Profile.id == user_id, Profile.student_status == StudentStatus.NORMAL)
        .values(student_status=StudentStatus.LEARNING, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def run_learning_status_hook(db: AsyncSession, user_id: uuid.UUID) -> bool:
    """Post-approval hook with its own failure domain; errors are logged only.

    Returns False when the recompute failed and the session was rolled back.
    """
    try:
        changed = await recompute_learning_status(db, user_id)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Learning status recompute failed for %s", user_id)
        return False
    if changed:
        logger.info("Learner %s moved to %s", user_id, StudentStatus.LEARNING.value)
    return True
