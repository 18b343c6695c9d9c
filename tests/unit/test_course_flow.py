"""Unit tests for course completion, lesson notes, learning status and downloads."""

from datetime import datetime, timezone

import pytest
from libs.common.cache import MemoryTTLCache
from libs.common.error_handler import ApiError, ErrorCode
from libs.common.storage import CachedStorageSigner, StorageSigningError
from services.approvals_service.kinds import KINDS
from services.approvals_service.models import (
    ApprovalStatus,
    FilePermission,
    ResourceKind,
    ReviewAction,
)
from services.approvals_service.services import (
    courses,
    downloads,
    learning_status,
    workflow,
)
from services.communications_service.models import Notification
from services.members_service.models import StudentStatus
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from tests.factories import (
    CourseAccessFactory,
    CourseFactory,
    CourseNoteFactory,
    FileAccessRequestFactory,
    LibraryFileFactory,
    ProfileFactory,
    actor_for,
)

COURSE = KINDS[ResourceKind.COURSE_ACCESS]
FILES = KINDS[ResourceKind.FILE_ACCESS_REQUESTS]
NOTES = KINDS[ResourceKind.COURSE_NOTES]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeSigner:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    async def sign(self, bucket, path, expires_in):
        self.calls.append((bucket, path, expires_in))
        if self.error is not None:
            raise self.error
        return f"https://storage.test/{bucket}/{path}?token=t{len(self.calls)}"


def _signer(inner=None) -> CachedStorageSigner:
    return CachedStorageSigner(
        inner or FakeSigner(), MemoryTTLCache(), url_ttl_seconds=600, cache_ttl_seconds=300
    )


async def _org(db):
    leader = ProfileFactory.create(role="leader", full_name="Leader")
    student = ProfileFactory.create(full_name="Student S", leader_id=leader.id)
    db.add_all([leader, student])
    db.add_all([CourseFactory.create(i) for i in (1, 2, 3)])
    await db.commit()
    return leader, student


async def _notification_count(db) -> int:
    return await db.scalar(select(func.count()).select_from(Notification))


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_complete_course_is_idempotent(db_session):
    _, s = await _org(db_session)
    db_session.add(CourseAccessFactory.create(s, 1, status="approved"))
    await db_session.commit()

    first = await courses.complete_course(db_session, actor_for(s), 1)
    completed_at = first.completed_at
    second = await courses.complete_course(db_session, actor_for(s), 1)

    assert first.status == ApprovalStatus.COMPLETED
    assert completed_at is not None
    assert second.completed_at == completed_at


@pytest.mark.asyncio
@pytest.mark.unit
async def test_complete_course_requires_approved_access(db_session):
    _, s = await _org(db_session)
    db_session.add(CourseAccessFactory.create(s, 1))
    await db_session.commit()

    with pytest.raises(ApiError) as pending_exc:
        await courses.complete_course(db_session, actor_for(s), 1)
    with pytest.raises(ApiError) as missing_exc:
        await courses.complete_course(db_session, actor_for(s), 2)

    assert pending_exc.value.code is ErrorCode.NOT_APPROVED
    assert missing_exc.value.code is ErrorCode.NO_ACCESS


# ---------------------------------------------------------------------------
# Lesson notes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_note_draft_then_submit_then_edit(db_session):
    leader, s = await _org(db_session)
    db_session.add(CourseAccessFactory.create(s, 1, status="approved"))
    await db_session.commit()
    actor = actor_for(s)

    draft = await courses.save_course_note(db_session, actor, 1, content_md="first pass")
    assert draft.status == courses.DRAFT_SAVED
    assert draft.item.status == ApprovalStatus.DRAFT
    assert draft.item.submitted_at is None
    assert await _notification_count(db_session) == 0

    submitted = await courses.save_course_note(
        db_session, actor, 1, content_md="final", submit=True
    )
    assert submitted.status == workflow.CREATED
    assert submitted.item.id == draft.item.id
    assert submitted.item.status == ApprovalStatus.SUBMITTED
    assert submitted.item.submitted_at is not None
    assert await _notification_count(db_session) == 1

    edited = await courses.save_course_note(
        db_session, actor, 1, content_md="final, with charts", submit=True
    )
    assert edited.status == workflow.UPDATED
    assert edited.item.content_md == "final, with charts"
    assert edited.item.status == ApprovalStatus.SUBMITTED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_saving_draft_over_submitted_note_keeps_status(db_session):
    _, s = await _org(db_session)
    note = CourseNoteFactory.create(s, 1)
    db_session.add_all([CourseAccessFactory.create(s, 1, status="completed"), note])
    await db_session.commit()

    result = await courses.save_course_note(
        db_session, actor_for(s), 1, content_md="tweak"
    )

    assert result.status == courses.DRAFT_SAVED
    assert result.item.status == ApprovalStatus.SUBMITTED
    assert result.item.content_md == "tweak"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_submitting_empty_note_is_missing_content(db_session):
    _, s = await _org(db_session)
    db_session.add(CourseAccessFactory.create(s, 1, status="approved"))
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await courses.save_course_note(
            db_session, actor_for(s), 1, content_md="  ", content_html="", submit=True
        )

    assert exc.value.code is ErrorCode.MISSING_CONTENT


@pytest.mark.asyncio
@pytest.mark.unit
async def test_note_needs_open_course(db_session):
    _, s = await _org(db_session)
    db_session.add(CourseAccessFactory.create(s, 2, status="rejected"))
    await db_session.commit()

    with pytest.raises(ApiError) as none_exc:
        await courses.save_course_note(db_session, actor_for(s), 1, content_md="x")
    with pytest.raises(ApiError) as rejected_exc:
        await courses.save_course_note(db_session, actor_for(s), 2, content_md="x")

    assert none_exc.value.code is ErrorCode.NO_ACCESS
    assert rejected_exc.value.code is ErrorCode.NOT_APPROVED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reviewing_a_draft_note_is_not_submitted(db_session):
    leader, s = await _org(db_session)
    draft = CourseNoteFactory.create(s, 1, status="draft")
    db_session.add(draft)
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await workflow.transition(
            db_session, NOTES, actor_for(leader), draft.id, ReviewAction.REVIEW
        )

    assert exc.value.code is ErrorCode.NOT_SUBMITTED


# ---------------------------------------------------------------------------
# Learning status
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_second_open_course_moves_learner_to_learning(db_session):
    leader, s = await _org(db_session)
    first = CourseAccessFactory.create(s, 1)
    second = CourseAccessFactory.create(s, 2)
    db_session.add_all([first, second])
    await db_session.commit()

    await workflow.transition(
        db_session, COURSE, actor_for(leader), first.id, ReviewAction.APPROVE
    )
    await db_session.refresh(s)
    assert s.student_status == StudentStatus.NORMAL

    await workflow.transition(
        db_session, COURSE, actor_for(leader), second.id, ReviewAction.APPROVE
    )
    await db_session.refresh(s)
    assert s.student_status == StudentStatus.LEARNING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_learning_status_never_downgrades_other_statuses(db_session):
    _, s = await _org(db_session)
    s.student_status = StudentStatus.PASSED
    db_session.add_all(
        [
            CourseAccessFactory.create(s, 1, status="completed"),
            CourseAccessFactory.create(s, 2, status="approved"),
        ]
    )
    await db_session.commit()

    changed = await learning_status.recompute_learning_status(db_session, s.id)

    await db_session.refresh(s)
    assert changed is False
    assert s.student_status == StudentStatus.PASSED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_learning_status_failure_does_not_undo_approval(db_session, monkeypatch):
    leader, s = await _org(db_session)
    item = CourseAccessFactory.create(s, 1)
    db_session.add(item)
    await db_session.commit()

    async def broken(db, user_id, settings=None):
        raise OperationalError("UPDATE profiles", {}, Exception("database is locked"))

    monkeypatch.setattr(learning_status, "recompute_learning_status", broken)

    result = await workflow.transition(
        db_session, COURSE, actor_for(leader), item.id, ReviewAction.APPROVE
    )

    await db_session.refresh(item)
    assert result.status == ApprovalStatus.APPROVED
    assert item.status == ApprovalStatus.APPROVED
    assert result.notified is True


# ---------------------------------------------------------------------------
# File access
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_approving_file_request_grants_permission_once(db_session):
    leader, s = await _org(db_session)
    library_file = LibraryFileFactory.create()
    db_session.add(library_file)
    await db_session.commit()
    request = FileAccessRequestFactory.create(s, library_file.id)
    db_session.add(request)
    db_session.add(
        FilePermission(
            file_id=library_file.id, grantee_user_id=s.id, granted_by=leader.id
        )
    )
    await db_session.commit()

    await workflow.transition(
        db_session, FILES, actor_for(leader), request.id, ReviewAction.APPROVE
    )

    grants = await db_session.scalar(
        select(func.count())
        .select_from(FilePermission)
        .where(FilePermission.grantee_user_id == s.id)
    )
    assert grants == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_rejected_file_request_grants_nothing(db_session):
    leader, s = await _org(db_session)
    library_file = LibraryFileFactory.create()
    db_session.add(library_file)
    await db_session.commit()
    request = FileAccessRequestFactory.create(s, library_file.id)
    db_session.add(request)
    await db_session.commit()

    await workflow.transition(
        db_session,
        FILES,
        actor_for(leader),
        request.id,
        ReviewAction.REJECT,
        reason="资料不完整",
    )

    grants = await db_session.scalar(select(func.count()).select_from(FilePermission))
    assert grants == 0


# ---------------------------------------------------------------------------
# Downloads
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_course_content_needs_open_access(db_session):
    _, s = await _org(db_session)
    db_session.add(CourseAccessFactory.create(s, 1))
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await downloads.course_content_url(db_session, actor_for(s), 1, _signer())

    assert exc.value.code is ErrorCode.FORBIDDEN


@pytest.mark.asyncio
@pytest.mark.unit
async def test_course_content_url_is_signed_and_reused(db_session):
    _, s = await _org(db_session)
    db_session.add(CourseAccessFactory.create(s, 1, status="approved"))
    await db_session.commit()
    inner = FakeSigner()
    signer = _signer(inner)

    first = await downloads.course_content_url(db_session, actor_for(s), 1, signer)
    second = await downloads.course_content_url(db_session, actor_for(s), 1, signer)

    assert first == "https://storage.test/courses/lessons/01/index.html?token=t1"
    assert second == first
    assert inner.calls == [("courses", "lessons/01/index.html", 600)]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_signing_failure_is_sign_failed(db_session):
    _, s = await _org(db_session)
    db_session.add(CourseAccessFactory.create(s, 1, status="approved"))
    await db_session.commit()
    signer = _signer(FakeSigner(error=StorageSigningError("bucket missing")))

    with pytest.raises(ApiError) as exc:
        await downloads.course_content_url(db_session, actor_for(s), 1, signer)

    assert exc.value.code is ErrorCode.SIGN_FAILED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_file_download_needs_permission_unless_admin(db_session):
    leader, s = await _org(db_session)
    library_file = LibraryFileFactory.create()
    db_session.add(library_file)
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await downloads.file_download_url(db_session, actor_for(s), library_file.id, _signer())
    assert exc.value.code is ErrorCode.FORBIDDEN

    admin_url = await downloads.file_download_url(
        db_session, actor_for(leader), library_file.id, _signer()
    )
    assert admin_url.startswith("https://storage.test/library/files/")

    db_session.add(
        FilePermission(
            file_id=library_file.id, grantee_user_id=s.id, granted_by=leader.id
        )
    )
    await db_session.commit()
    url = await downloads.file_download_url(
        db_session, actor_for(s), library_file.id, _signer()
    )
    assert url == admin_url


@pytest.mark.asyncio
@pytest.mark.unit
async def test_deleted_file_is_not_found(db_session):
    leader, _ = await _org(db_session)
    library_file = LibraryFileFactory.create(deleted_at=datetime.now(timezone.utc))
    db_session.add(library_file)
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await downloads.file_download_url(
            db_session, actor_for(leader), library_file.id, _signer()
        )

    assert exc.value.code is ErrorCode.NOT_FOUND
