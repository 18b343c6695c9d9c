"""Unit tests for the single-item request / review / notify workflow.

Tests call workflow functions directly with the db_session fixture.
No HTTP layer involved.
"""

import pytest
from libs.common.error_handler import ApiError, ErrorCode
from services.approvals_service.kinds import KINDS
from services.approvals_service.models import (
    ApprovalStatus,
    CourseAccess,
    RejectionReason,
    ResourceKind,
    ReviewAction,
)
from services.approvals_service.schemas import ApprovalItemResponse
from services.approvals_service.services import courses, workflow
from services.communications_service.models import Notification
from services.communications_service.services.dispatcher import (
    NotificationDispatcher,
    NotificationDispatchError,
)
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from tests.factories import (
    ClassicTradeFactory,
    CourseAccessFactory,
    CourseFactory,
    ProfileFactory,
    TradeSubmissionFactory,
    WeeklySummaryFactory,
    actor_for,
)

COURSE = KINDS[ResourceKind.COURSE_ACCESS]
TRADES = KINDS[ResourceKind.TRADE_SUBMISSIONS]
CLASSIC = KINDS[ResourceKind.CLASSIC_TRADES]
WEEKLY = KINDS[ResourceKind.WEEKLY_SUMMARIES]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FailingDispatcher(NotificationDispatcher):
    async def send(self, messages):
        raise NotificationDispatchError("notifications table unavailable")


class RollingBackDispatcher(NotificationDispatcher):
    async def send(self, messages):
        await self.db.rollback()
        raise NotificationDispatchError("insert into notifications failed")


async def _org(db):
    """L1 -> L2 -> S, plus an unrelated leader L3 and a super-admin."""
    admin = ProfileFactory.create(role="super_admin", full_name="Admin")
    l1 = ProfileFactory.create(role="leader", full_name="Leader One")
    l2 = ProfileFactory.create(role="leader", full_name="Leader Two", leader_id=l1.id)
    s = ProfileFactory.create(role="student", full_name="Student S", leader_id=l2.id)
    l3 = ProfileFactory.create(role="leader", full_name="Leader Three")
    db.add_all([admin, l1, l2, s, l3])
    db.add(CourseFactory.create(1))
    db.add(CourseFactory.create(2))
    await db.commit()
    return admin, l1, l2, s, l3


async def _notifications(db, user_id=None) -> list:
    query = select(Notification).order_by(Notification.created_at)
    if user_id is not None:
        query = query.where(Notification.to_user_id == user_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def _notification_count(db) -> int:
    return await db.scalar(select(func.count()).select_from(Notification))


# ---------------------------------------------------------------------------
# submit
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_request_creates_item_and_notifies_reviewers(db_session):
    admin, l1, l2, s, l3 = await _org(db_session)

    result = await courses.request_course_access(db_session, actor_for(s), 1)

    assert result.status == workflow.CREATED
    assert result.notified is True
    assert result.item.status == ApprovalStatus.REQUESTED
    assert result.item.owner_leader_id == l2.id
    assert result.item.requested_at is not None

    notified = {n.to_user_id for n in await _notifications(db_session)}
    assert notified == {l2.id, l1.id, admin.id}
    sample = (await _notifications(db_session, l2.id))[0]
    assert sample.title == "课程申请 / Course request"
    assert sample.content.startswith("学员 Student S 申请了课程 #1 第1课。")
    assert sample.from_user_id == s.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_repeated_request_is_a_noop(db_session):
    _, _, _, s, _ = await _org(db_session)
    first = await courses.request_course_access(db_session, actor_for(s), 1)
    sent = await _notification_count(db_session)

    again = await courses.request_course_access(db_session, actor_for(s), 1)

    assert again.status == workflow.ALREADY_PENDING
    assert again.item.id == first.item.id
    assert await _notification_count(db_session) == sent
    rows = await db_session.scalar(select(func.count()).select_from(CourseAccess))
    assert rows == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reject_then_resubmit_clears_review_fields(db_session):
    _, l1, _, s, _ = await _org(db_session)
    created = await courses.request_course_access(db_session, actor_for(s), 1)

    rejected = await workflow.transition(
        db_session,
        COURSE,
        actor_for(l1),
        created.item.id,
        ReviewAction.REJECT,
        reason="banana",
        note="try again",
    )
    assert rejected.status == ApprovalStatus.REJECTED
    assert rejected.item.rejection_reason == RejectionReason.OTHER
    assert rejected.item.reviewed_by == l1.id

    notice = (await _notifications(db_session, s.id))[-1]
    assert notice.title == "课程申请被拒绝 / Course rejected"
    assert "原因：其他" in notice.content

    again = await courses.request_course_access(db_session, actor_for(s), 1)

    assert again.status == workflow.RESUBMITTED
    item = again.item
    assert item.id == created.item.id
    assert item.status == ApprovalStatus.REQUESTED
    assert item.rejection_reason is None
    assert item.review_note is None
    assert item.reviewed_by is None
    assert item.reviewed_at is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_approved_item_cannot_be_resubmitted(db_session):
    _, _, _, s, _ = await _org(db_session)
    db_session.add(CourseAccessFactory.create(s, 1, status="approved"))
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await courses.request_course_access(db_session, actor_for(s), 1)

    assert exc.value.code is ErrorCode.ALREADY_REVIEWED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_super_admin_cannot_submit_requests(db_session):
    admin, *_ = await _org(db_session)

    with pytest.raises(ApiError) as exc:
        await courses.request_course_access(db_session, actor_for(admin), 1)

    assert exc.value.code is ErrorCode.FORBIDDEN


@pytest.mark.asyncio
@pytest.mark.unit
async def test_weekly_summary_edit_while_pending_and_resubmit_after_review(db_session):
    _, l1, _, s, _ = await _org(db_session)
    week = WeeklySummaryFactory.create(s).week_start
    key = {"week_start": week}

    created = await workflow.submit(
        db_session, WEEKLY, actor_for(s), key=key, payload={"summary": "v1"}
    )
    updated = await workflow.submit(
        db_session, WEEKLY, actor_for(s), key=key, payload={"summary": "v2"}
    )
    assert created.status == workflow.CREATED
    assert updated.status == workflow.UPDATED
    assert updated.item.id == created.item.id
    assert updated.item.summary == "v2"

    await workflow.transition(
        db_session, WEEKLY, actor_for(l1), created.item.id, ReviewAction.REVIEW
    )
    resubmitted = await workflow.submit(
        db_session, WEEKLY, actor_for(s), key=key, payload={"summary": "v3"}
    )

    assert resubmitted.status == workflow.RESUBMITTED
    assert resubmitted.item.status == ApprovalStatus.SUBMITTED
    assert resubmitted.item.summary == "v3"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_trade_submission_resubmits_by_id_only_from_rejected(db_session):
    _, l1, _, s, _ = await _org(db_session)
    rejected = TradeSubmissionFactory.create(s, status="rejected")
    approved = TradeSubmissionFactory.create(s, status="approved")
    db_session.add_all([rejected, approved])
    await db_session.commit()

    result = await workflow.submit(
        db_session, TRADES, actor_for(s), payload={"note": "fixed"}, item_id=rejected.id
    )
    assert result.status == workflow.RESUBMITTED
    assert result.item.note == "fixed"

    with pytest.raises(ApiError) as exc:
        await workflow.submit(db_session, TRADES, actor_for(s), item_id=approved.id)
    assert exc.value.code is ErrorCode.ALREADY_REVIEWED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_submit_by_id_of_someone_elses_item_is_forbidden(db_session):
    _, _, l2, s, _ = await _org(db_session)
    other = ProfileFactory.create(leader_id=l2.id)
    db_session.add(other)
    await db_session.commit()
    theirs = ClassicTradeFactory.create(other)
    db_session.add(theirs)
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await workflow.submit(
            db_session, CLASSIC, actor_for(s), payload={"title": "x"}, item_id=theirs.id
        )

    assert exc.value.code is ErrorCode.FORBIDDEN


@pytest.mark.asyncio
@pytest.mark.unit
async def test_delete_own_classic_trade(db_session):
    _, _, l2, s, _ = await _org(db_session)
    other = ProfileFactory.create(leader_id=l2.id)
    db_session.add(other)
    await db_session.commit()
    mine = ClassicTradeFactory.create(s)
    theirs = ClassicTradeFactory.create(other)
    db_session.add_all([mine, theirs])
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await workflow.delete_own(db_session, CLASSIC, actor_for(s), theirs.id)
    assert exc.value.code is ErrorCode.FORBIDDEN

    await workflow.delete_own(db_session, CLASSIC, actor_for(s), mine.id)
    assert await db_session.get(type(mine), mine.id) is None

    with pytest.raises(ApiError) as exc:
        await workflow.delete_own(db_session, TRADES, actor_for(s), theirs.id)
    assert exc.value.code is ErrorCode.INVALID_ACTION


# ---------------------------------------------------------------------------
# transition: check order
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_out_of_scope_reviewer_is_forbidden_and_nothing_changes(db_session):
    _, _, _, s, l3 = await _org(db_session)
    item = CourseAccessFactory.create(s, 1)
    db_session.add(item)
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await workflow.transition(
            db_session, COURSE, actor_for(l3), item.id, ReviewAction.APPROVE
        )

    assert exc.value.code is ErrorCode.FORBIDDEN
    await db_session.refresh(item)
    assert item.status == ApprovalStatus.REQUESTED
    assert item.reviewed_by is None
    assert await _notification_count(db_session) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_scope_is_checked_before_status(db_session):
    _, _, _, s, l3 = await _org(db_session)
    item = CourseAccessFactory.create(s, 1, status="approved")
    db_session.add(item)
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await workflow.transition(
            db_session, COURSE, actor_for(l3), item.id, ReviewAction.REJECT
        )

    assert exc.value.code is ErrorCode.FORBIDDEN


@pytest.mark.asyncio
@pytest.mark.unit
async def test_action_must_apply_to_kind(db_session):
    _, l1, _, s, _ = await _org(db_session)
    item = CourseAccessFactory.create(s, 1)
    db_session.add(item)
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await workflow.transition(
            db_session, COURSE, actor_for(l1), item.id, ReviewAction.REVIEW
        )

    assert exc.value.code is ErrorCode.INVALID_ACTION


@pytest.mark.asyncio
@pytest.mark.unit
async def test_coach_cannot_review_course_access(db_session):
    _, _, _, s, _ = await _org(db_session)
    coach = ProfileFactory.create(role="coach")
    db_session.add(coach)
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await workflow.transition(
            db_session,
            COURSE,
            actor_for(coach),
            CourseAccessFactory.create(s).id,
            ReviewAction.APPROVE,
        )

    assert exc.value.code is ErrorCode.FORBIDDEN


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unknown_item_is_not_found(db_session):
    _, l1, *_ = await _org(db_session)

    with pytest.raises(ApiError) as exc:
        await workflow.transition(
            db_session,
            COURSE,
            actor_for(l1),
            ProfileFactory.create().id,
            ReviewAction.APPROVE,
        )

    assert exc.value.code is ErrorCode.NOT_FOUND


@pytest.mark.asyncio
@pytest.mark.unit
async def test_resolved_item_is_already_reviewed(db_session):
    _, l1, _, s, _ = await _org(db_session)
    item = CourseAccessFactory.create(s, 1, status="rejected")
    db_session.add(item)
    await db_session.commit()

    with pytest.raises(ApiError) as exc:
        await workflow.transition(
            db_session, COURSE, actor_for(l1), item.id, ReviewAction.APPROVE
        )

    assert exc.value.code is ErrorCode.ALREADY_REVIEWED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_leader_keeps_items_recorded_at_creation(db_session):
    """A learner moved to another org stays reviewable by the original leader."""
    _, _, l2, s, l3 = await _org(db_session)
    item = CourseAccessFactory.create(s, 1)
    db_session.add(item)
    await db_session.commit()
    s.leader_id = l3.id
    await db_session.commit()

    result = await workflow.transition(
        db_session, COURSE, actor_for(l2), item.id, ReviewAction.APPROVE
    )

    assert result.status == ApprovalStatus.APPROVED


# ---------------------------------------------------------------------------
# transition: effects
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_concurrent_reviews_apply_exactly_once(session_factory):
    async with session_factory() as setup:
        _, l1, _, s, _ = await _org(setup)
        item = CourseAccessFactory.create(s, 1)
        setup.add(item)
        await setup.commit()

    async with session_factory() as db_a, session_factory() as db_b:
        # B reads the item before A decides, then acts on what it saw.
        stale = await db_b.get(CourseAccess, item.id)
        assert stale.status == ApprovalStatus.REQUESTED
        await db_b.commit()

        first = await workflow.transition(
            db_a, COURSE, actor_for(l1), item.id, ReviewAction.APPROVE
        )
        with pytest.raises(ApiError) as exc:
            await workflow.transition(
                db_b, COURSE, actor_for(l1), item.id, ReviewAction.REJECT
            )

    assert first.status == ApprovalStatus.APPROVED
    assert exc.value.code is ErrorCode.ALREADY_REVIEWED

    async with session_factory() as check:
        fresh = await check.get(CourseAccess, item.id)
        assert fresh.status == ApprovalStatus.APPROVED
        assert fresh.rejection_reason is None
        assert len(await _notifications(check, s.id)) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_notification_failure_keeps_the_decision(db_session):
    _, l1, _, s, _ = await _org(db_session)
    item = CourseAccessFactory.create(s, 1)
    db_session.add(item)
    await db_session.commit()

    result = await workflow.transition(
        db_session,
        COURSE,
        actor_for(l1),
        item.id,
        ReviewAction.APPROVE,
        dispatcher=FailingDispatcher(db_session),
    )

    assert result.notified is False
    await db_session.refresh(item)
    assert item.status == ApprovalStatus.APPROVED
    assert await _notification_count(db_session) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_submit_reports_notification_failure(db_session):
    _, _, _, s, _ = await _org(db_session)

    result = await courses.request_course_access(
        db_session, actor_for(s), 1, dispatcher=FailingDispatcher(db_session)
    )

    assert result.status == workflow.CREATED
    assert result.notified is False
    assert result.item.status == ApprovalStatus.REQUESTED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_label_lookup_failure_after_review_keeps_the_decision(
    db_session, monkeypatch
):
    _, l1, _, s, _ = await _org(db_session)
    item = CourseAccessFactory.create(s, 1)
    db_session.add(item)
    await db_session.commit()

    async def broken_labels(*args, **kwargs):
        raise OperationalError("SELECT courses", {}, Exception("connection reset"))

    monkeypatch.setattr(workflow, "describe_items", broken_labels)

    result = await workflow.transition(
        db_session, COURSE, actor_for(l1), item.id, ReviewAction.APPROVE
    )

    assert result.notified is False
    assert result.status == ApprovalStatus.APPROVED
    assert ApprovalItemResponse.model_validate(result.item).status == ApprovalStatus.APPROVED
    assert await _notification_count(db_session) == 0
    with pytest.raises(ApiError) as exc:
        await workflow.transition(
            db_session, COURSE, actor_for(l1), item.id, ReviewAction.REJECT
        )
    assert exc.value.code is ErrorCode.ALREADY_REVIEWED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_recipient_lookup_failure_after_submit_keeps_the_request(
    db_session, monkeypatch
):
    _, _, _, s, _ = await _org(db_session)

    async def broken_recipients(*args, **kwargs):
        raise OperationalError("SELECT profiles", {}, Exception("connection reset"))

    monkeypatch.setattr(workflow, "reviewers_for_subject", broken_recipients)

    result = await courses.request_course_access(db_session, actor_for(s), 1)

    assert result.status == workflow.CREATED
    assert result.notified is False
    assert result.item.status == ApprovalStatus.REQUESTED
    stored = await db_session.scalar(
        select(CourseAccess.status).where(CourseAccess.user_id == s.id)
    )
    assert stored == ApprovalStatus.REQUESTED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_dispatcher_rollback_leaves_items_readable(db_session):
    _, l1, _, s, _ = await _org(db_session)
    item = CourseAccessFactory.create(s, 1)
    db_session.add(item)
    await db_session.commit()

    result = await workflow.transition(
        db_session,
        COURSE,
        actor_for(l1),
        item.id,
        ReviewAction.REJECT,
        reason="名额已满",
        dispatcher=RollingBackDispatcher(db_session),
    )

    assert result.notified is False
    body = ApprovalItemResponse.model_validate(result.item)
    assert body.status == ApprovalStatus.REJECTED
    assert body.rejection_reason == "名额已满"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_review_with_note_sends_reply_notice(db_session):
    _, l1, _, s, _ = await _org(db_session)
    entry = ClassicTradeFactory.create(s)
    db_session.add(entry)
    await db_session.commit()

    result = await workflow.transition(
        db_session,
        CLASSIC,
        actor_for(l1),
        entry.id,
        ReviewAction.REVIEW,
        note="Nice entry",
    )

    assert result.status == ApprovalStatus.REVIEWED
    assert result.item.review_note == "Nice entry"
    notice = (await _notifications(db_session, s.id))[0]
    assert notice.title == "经典交易已回复 / Classic trade replied"
    assert "Nice entry" in notice.content
