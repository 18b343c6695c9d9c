"""Sequencing guard for numbered lessons.

Lesson ``k > 1`` is reachable only once the learner has submitted (not
necessarily had reviewed) a summary for lesson ``k - 1``. The check runs
both when access is requested and when content is served.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from libs.common.config import Settings, get_settings
from libs.common.error_handler import ApiError, ErrorCode
from services.approvals_service.models import CourseNote
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

PREVIOUS_SUMMARY_REQUIRED = "PREVIOUS_SUMMARY_REQUIRED"


@dataclass(frozen=True)
class PrerequisiteResult:
    allowed: bool
    reason: Optional[str] = None
    required_course_id: Optional[int] = None


def validate_course_id(course_id: int, settings: Optional[Settings] = None) -> int:
    settings = settings or get_settings()
    if course_id < 1 or course_id > settings.COURSE_COUNT:
        raise ApiError(ErrorCode.INVALID_COURSE)
    return course_id


async def check_prerequisite(
    db: AsyncSession,
    user_id: uuid.UUID,
    course_id: int,
    settings: Optional[Settings] = None,
) -> PrerequisiteResult:
    validate_course_id(course_id, settings)
    if course_id == 1:
        return PrerequisiteResult(allowed=True)

    previous = course_id - 1
    submitted_at = await db.scalar(
        select(CourseNote.submitted_at).where(
            CourseNote.user_id == user_id,
            CourseNote.course_id == previous,
        )
    )
    if submitted_at is None:
        return PrerequisiteResult(
            allowed=False,
            reason=PREVIOUS_SUMMARY_REQUIRED,
            required_course_id=previous,
        )
    return PrerequisiteResult(allowed=True)


async def require_prerequisite(
    db: AsyncSession,
    user_id: uuid.UUID,
    course_id: int,
    settings: Optional[Settings] = None,
) -> None:
    result = await check_prerequisite(db, user_id, course_id, settings)
    if not result.allowed:
        raise ApiError(
            ErrorCode.PREREQUISITE_BLOCKED,
            f"{result.reason}:{result.required_course_id}",
        )
