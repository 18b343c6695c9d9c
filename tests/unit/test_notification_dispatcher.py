"""Unit tests for the notification dispatcher and inbox operations."""

import uuid
from datetime import datetime, timezone

import pytest
from libs.common.error_handler import ApiError, ErrorCode
from services.communications_service.models import Notification
from services.communications_service.services import inbox
from services.communications_service.services.dispatcher import (
    NotificationDispatcher,
    NotificationDispatchError,
    OutgoingNotification,
)
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from tests.factories import NotificationFactory, ProfileFactory


class BrokenSession:
    """Stands in for an ``AsyncSession`` whose commit always fails."""

    def __init__(self):
        self.added = []
        self.rolled_back = False

    def add_all(self, rows):
        self.added.extend(rows)

    async def commit(self):
        raise OperationalError("INSERT INTO notifications", {}, Exception("disk full"))

    async def rollback(self):
        self.rolled_back = True


async def _people(db, count=2):
    people = [ProfileFactory.create() for _ in range(count)]
    db.add_all(people)
    await db.commit()
    return people


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_notify_sends_once_per_recipient(db_session):
    sender, a, b = await _people(db_session, 3)

    sent = await NotificationDispatcher(db_session).notify(
        [a.id, b.id, a.id, None], sender.id, "课程申请 / Course request", "body"
    )

    rows = (await db_session.execute(select(Notification))).scalars().all()
    assert sent == 2
    assert sorted(str(r.to_user_id) for r in rows) == sorted([str(a.id), str(b.id)])
    assert all(r.from_user_id == sender.id and r.read_at is None for r in rows)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_send_drops_identical_messages(db_session):
    (a,) = await _people(db_session, 1)
    message = OutgoingNotification(
        to_user_id=a.id, from_user_id=None, title="t", content="c"
    )

    sent = await NotificationDispatcher(db_session).send([message, message])

    assert sent == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_send_nothing_is_a_no_op():
    session = BrokenSession()

    assert await NotificationDispatcher(session).send([]) == 0
    assert session.added == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failed_insert_raises_dispatch_error_after_rollback():
    session = BrokenSession()

    with pytest.raises(NotificationDispatchError):
        await NotificationDispatcher(session).notify(
            [uuid.uuid4()], None, "t", "c"
        )

    assert session.rolled_back
    assert len(session.added) == 1


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_list_and_count_unread(db_session):
    me, other = await _people(db_session)
    db_session.add_all(
        [
            NotificationFactory.create(me.id),
            NotificationFactory.create(me.id, title="older"),
            NotificationFactory.create(me.id, read_at=datetime.now(timezone.utc)),
            NotificationFactory.create(other.id),
        ]
    )
    await db_session.commit()

    everything, total = await inbox.list_notifications(
        db_session, me.id, page=1, page_size=2
    )
    unread, unread_total = await inbox.list_notifications(
        db_session, me.id, page=1, page_size=20, unread_only=True
    )

    assert total == 3
    assert len(everything) == 2
    assert unread_total == 2
    assert all(n.read_at is None for n in unread)
    assert await inbox.count_unread(db_session, me.id) == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_mark_read_is_recipient_only_and_idempotent(db_session):
    me, other = await _people(db_session)
    notification = NotificationFactory.create(me.id)
    db_session.add(notification)
    await db_session.commit()

    with pytest.raises(ApiError) as forbidden:
        await inbox.mark_read(db_session, other.id, notification.id)
    with pytest.raises(ApiError) as missing:
        await inbox.mark_read(db_session, me.id, uuid.uuid4())

    assert forbidden.value.code is ErrorCode.FORBIDDEN
    assert missing.value.code is ErrorCode.NOT_FOUND
    assert await inbox.mark_read(db_session, me.id, notification.id) == 1
    assert await inbox.mark_read(db_session, me.id, notification.id) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_mark_all_read_touches_only_own_unread(db_session):
    me, other = await _people(db_session)
    db_session.add_all(
        [
            NotificationFactory.create(me.id),
            NotificationFactory.create(me.id),
            NotificationFactory.create(other.id),
        ]
    )
    await db_session.commit()

    assert await inbox.mark_all_read(db_session, me.id) == 2
    assert await inbox.mark_all_read(db_session, me.id) == 0
    assert await inbox.count_unread(db_session, other.id) == 1
