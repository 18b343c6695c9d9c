"""Signed download links for course content and library files.

Access is re-checked on every call: an approved course must still pass the
sequencing guard, and a file needs a permission grant (or an admin role).
"""

import uuid
from functools import lru_cache

import httpx
from libs.auth.models import Actor
from libs.auth.roles import ADMIN_ROLES
from libs.common.cache import build_cache
from libs.common.config import get_settings
from libs.common.error_handler import ApiError, ErrorCode
from libs.common.logging import get_logger
from libs.common.storage import CachedStorageSigner, StorageSigningError, build_signer
from services.approvals_service.models import Course
from services.approvals_service.services.courses import get_course_access
from services.approvals_service.services.files import (
    get_library_file,
    has_file_permission,
)
from services.approvals_service.services.learning_status import OPEN_STATUSES
from services.approvals_service.services.sequencing import (
    require_prerequisite,
    validate_course_id,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@lru_cache
def get_storage_signer() -> CachedStorageSigner:
    """Process-wide signer; tests override this dependency."""
    settings = get_settings()
    return build_signer(settings, build_cache(settings, prefix="approvals:"))


async def _sign(signer: CachedStorageSigner, bucket: str, path: str) -> str:
    try:
        return await signer.sign(bucket, path)
    except (StorageSigningError, httpx.HTTPError) as exc:
        logger.error("Could not sign %s/%s: %s", bucket, path, exc)
        raise ApiError(ErrorCode.SIGN_FAILED)


async def course_content_url(
    db: AsyncSession, actor: Actor, course_id: int, signer: CachedStorageSigner
) -> str:
    validate_course_id(course_id)
    access = await get_course_access(db, actor.id, course_id)
    if access is None or access.status not in OPEN_STATUSES:
        raise ApiError(ErrorCode.FORBIDDEN)
    await require_prerequisite(db, actor.id, course_id)

    course = await db.get(Course, course_id)
    if (
        course is None
        or course.deleted_at is not None
        or not course.content_bucket
        or not course.content_path
    ):
        raise ApiError(ErrorCode.NOT_FOUND)
    return await _sign(signer, course.content_bucket, course.content_path)


async def file_download_url(
    db: AsyncSession, actor: Actor, file_id: uuid.UUID, signer: CachedStorageSigner
) -> str:
    file = await get_library_file(db, file_id)
    if actor.role not in ADMIN_ROLES and not await has_file_permission(
        db, file_id, actor.id
    ):
        raise ApiError(ErrorCode.FORBIDDEN)
    return await _sign(signer, file.storage_bucket, file.storage_path)
