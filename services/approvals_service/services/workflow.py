"""Request / review / notify engine shared by every resource kind.

Review checks run in a fixed order and stop at the first failure:

1. the actor's role may review the kind, and the action applies to it
2. the item exists
3. the item's subject is in the actor's scope
4. the item's current status allows the action
5. rejection reasons are normalized onto the closed list

Scope is checked before status so an out-of-scope actor always gets
``FORBIDDEN``, whatever state the item is in. Every state change is a
compare-and-set ``UPDATE ... WHERE status = <expected>``; a zero rowcount
means another request got there first.

Notifications are written after the state change commits. If they fail the
state change stands and the result carries ``notified=False``.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, Optional

from libs.auth.models import Actor
from libs.auth.roles import LEARNER_ROLES, SystemRole
from libs.common.datetime_utils import utc_now
from libs.common.error_handler import ApiError, ErrorCode
from libs.common.logging import get_logger
from services.approvals_service.kinds import KindDescriptor
from services.approvals_service.models import (
    ACTION_RESULT,
    ApprovalStatus,
    Course,
    FilePermission,
    LadderAuthorization,
    LibraryFile,
    ResourceKind,
    ReviewAction,
    TradeSubmission,
    normalize_rejection_reason,
)
from services.approvals_service.services.learning_status import (
    run_learning_status_hook,
)
from services.communications_service.services.dispatcher import (
    NotificationDispatcher,
    NotificationDispatchError,
    OutgoingNotification,
)
from services.communications_service.templates.approvals import (
    decision_notice,
    submission_notice,
)
from services.members_service.services import graph_store
from services.members_service.services.scope import (
    ScopeSet,
    resolve_scope,
    reviewers_for_subject,
)
from sqlalchemy import delete, inspect, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

logger = get_logger(__name__)

CREATED = "created"
RESUBMITTED = "resubmitted"
UPDATED = "updated"
ALREADY_PENDING = "already_pending"

RESOLVED_STATUSES = frozenset({ApprovalStatus.APPROVED, ApprovalStatus.REJECTED})


@dataclass
class SubmitResult:
    status: str
    item: Any
    notified: bool = True


@dataclass
class TransitionResult:
    item: Any
    status: ApprovalStatus
    notified: bool = True


@dataclass(frozen=True)
class SkippedItem:
    id: uuid.UUID
    error: ErrorCode


@dataclass
class BulkTransitionResult:
    updated: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    notified: bool = True


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def require_reviewer(
    descriptor: KindDescriptor, actor: Actor, action: Optional[ReviewAction] = None
) -> None:
    if actor.role not in descriptor.reviewer_roles:
        raise ApiError(ErrorCode.FORBIDDEN)
    if action is not None and not descriptor.allows(action):
        raise ApiError(ErrorCode.INVALID_ACTION)


def in_scope(actor: Actor, scope: ScopeSet, item) -> bool:
    """Scope membership, or the leader recorded on the item at creation."""
    if scope.contains(item.user_id):
        return True
    return actor.role is SystemRole.LEADER and item.owner_leader_id == actor.id


def review_error(descriptor: KindDescriptor, item) -> Optional[ErrorCode]:
    """Why ``item`` cannot be reviewed right now, or ``None`` if it can."""
    if descriptor.archivable and item.archived_at is not None:
        return ErrorCode.ALREADY_ARCHIVED
    if item.status == descriptor.pending_status:
        return None
    if item.status == ApprovalStatus.DRAFT:
        return ErrorCode.NOT_SUBMITTED
    return ErrorCode.ALREADY_REVIEWED


async def _load_batch(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    item_ids: Iterable[uuid.UUID],
) -> list:
    """Load every item or fail the batch: unknown id, then any out-of-scope id."""
    ids = list(dict.fromkeys(item_ids))
    if not ids:
        raise ApiError(ErrorCode.INVALID_BODY)

    model = descriptor.model
    result = await db.execute(select(model).where(model.id.in_(ids)))
    by_id = {item.id: item for item in result.scalars().all()}
    if len(by_id) != len(ids):
        raise ApiError(ErrorCode.NOT_FOUND)

    scope = await resolve_scope(db, actor)
    items = [by_id[item_id] for item_id in ids]
    if not all(in_scope(actor, scope, item) for item in items):
        raise ApiError(ErrorCode.FORBIDDEN)
    return items


# ---------------------------------------------------------------------------
# Persistence helpers
# ---------------------------------------------------------------------------


async def _compare_and_set(
    db: AsyncSession,
    descriptor: KindDescriptor,
    item_id: uuid.UUID,
    expected: ApprovalStatus,
    values: dict,
) -> bool:
    model = descriptor.model
    stmt = update(model).where(model.id == item_id, model.status == expected)
    if descriptor.archivable:
        stmt = stmt.where(model.archived_at.is_(None))
    result = await db.execute(
        stmt.values(**values).execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _review_values(
    actor: Actor,
    action: ReviewAction,
    reason: Optional[str],
    note: Optional[str],
    now: datetime,
) -> dict:
    rejection_reason = None
    if action is ReviewAction.REJECT:
        rejection_reason = normalize_rejection_reason(reason)
    return {
        "status": ACTION_RESULT[action],
        "reviewed_by": actor.id,
        "reviewed_at": now,
        "updated_at": now,
        "rejection_reason": rejection_reason,
        "review_note": note or None,
    }


async def _grant_file_permission(
    db: AsyncSession, file_id: uuid.UUID, grantee_id: uuid.UUID, granted_by: uuid.UUID
) -> None:
    existing = await db.scalar(
        select(FilePermission.id).where(
            FilePermission.file_id == file_id,
            FilePermission.grantee_user_id == grantee_id,
        )
    )
    if existing is None:
        db.add(
            FilePermission(
                file_id=file_id, grantee_user_id=grantee_id, granted_by=granted_by
            )
        )


async def _apply_side_effects(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    items: list,
    action: ReviewAction,
) -> None:
    """Writes that must commit together with the status change."""
    if (
        descriptor.kind is ResourceKind.FILE_ACCESS_REQUESTS
        and action is ReviewAction.APPROVE
    ):
        for item in items:
            await _grant_file_permission(db, item.file_id, item.user_id, actor.id)
    elif descriptor.kind is ResourceKind.LADDER_AUTHORIZATIONS:
        await db.execute(
            update(LadderAuthorization)
            .where(LadderAuthorization.id.in_([item.id for item in items]))
            .values(enabled=action is ReviewAction.APPROVE)
        )


def _loaded_state(items: list) -> list:
    """Column values of already-loaded items, to put back after a rollback."""
    return [
        (item, {a.key: getattr(item, a.key) for a in inspect(item).mapper.column_attrs})
        for item in items
    ]


def _restore_loaded_state(snapshot: list) -> None:
    # A rollback expires every instance; the committed values are still valid.
    for item, values in snapshot:
        for key, value in values.items():
            set_committed_value(item, key, value)


async def _after_commit(
    db: AsyncSession, descriptor: KindDescriptor, items: list, action: ReviewAction
) -> None:
    if descriptor.kind is not ResourceKind.COURSE_ACCESS or action is not ReviewAction.APPROVE:
        return
    loaded = _loaded_state(items)
    ok = True
    for user_id in dict.fromkeys(item.user_id for item in items):
        ok = await run_learning_status_hook(db, user_id) and ok
    if not ok:
        _restore_loaded_state(loaded)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


async def describe_items(
    db: AsyncSession, descriptor: KindDescriptor, items: list
) -> dict:
    """Human-readable label per item id, used in notification copy."""
    kind = descriptor.kind
    if kind in (ResourceKind.COURSE_ACCESS, ResourceKind.COURSE_NOTES):
        course_ids = {item.course_id for item in items}
        result = await db.execute(select(Course).where(Course.id.in_(course_ids)))
        courses = {course.id: course for course in result.scalars().all()}
        return {
            item.id: courses[item.course_id].label
            if item.course_id in courses
            else f"#{item.course_id}"
            for item in items
        }
    if kind is ResourceKind.FILE_ACCESS_REQUESTS:
        file_ids = {item.file_id for item in items}
        result = await db.execute(
            select(LibraryFile).where(LibraryFile.id.in_(file_ids))
        )
        files = {f.id: f for f in result.scalars().all()}
        return {
            item.id: files[item.file_id].label
            if item.file_id in files
            else str(item.file_id)
            for item in items
        }
    if kind is ResourceKind.WEEKLY_SUMMARIES:
        return {item.id: item.week_start.isoformat() for item in items}
    return {item.id: "" for item in items}


def _variant(item) -> Optional[str]:
    if isinstance(item, TradeSubmission):
        return item.type.value
    return None


async def _deliver(
    db: AsyncSession,
    dispatcher: Optional[NotificationDispatcher],
    items: list,
    build_messages: Callable[[], Awaitable[list]],
    context: str,
) -> bool:
    """Build and write notifications for a change that already committed.

    Looking up recipients and labels happens here too, so any database error
    on the way is a partial failure (``False``), never a failed request.
    """
    loaded = _loaded_state(items)
    dispatcher = dispatcher or NotificationDispatcher(db)
    try:
        await dispatcher.send(await build_messages())
        return True
    except NotificationDispatchError:
        logger.error("%s committed but notifications were not written", context)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("%s committed but notifications could not be prepared", context)
    _restore_loaded_state(loaded)
    return False


async def _reviewer_messages(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    item,
    outcome: str,
) -> list:
    subject = await graph_store.get_profile(db, actor.id)
    if subject is None:
        return []
    recipients = await reviewers_for_subject(db, subject, descriptor.reviewer_roles)
    if not recipients:
        return []

    labels = await describe_items(db, descriptor, [item])
    copy = submission_notice(
        _variant(item) or descriptor.kind.value,
        subject.label,
        labels[item.id],
        resubmitted=outcome != CREATED,
    )
    return [
        OutgoingNotification(
            to_user_id=recipient,
            from_user_id=actor.id,
            title=copy.title,
            content=copy.content,
        )
        for recipient in recipients
    ]


async def _notify_reviewers(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    item,
    outcome: str,
    dispatcher: Optional[NotificationDispatcher],
) -> bool:
    return await _deliver(
        db,
        dispatcher,
        [item],
        partial(_reviewer_messages, db, descriptor, actor, item, outcome),
        f"{descriptor.kind.value} {item.id} {outcome}",
    )


async def _decision_messages(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    items: list,
    decision: str,
    reason: Optional[str],
    note: Optional[str],
) -> list:
    labels = await describe_items(db, descriptor, items)

    by_subject: dict = {}
    for item in items:
        by_subject.setdefault(item.user_id, []).append(item)

    messages = []
    for subject_id, subject_items in by_subject.items():
        copy = decision_notice(
            descriptor.kind.value,
            decision,
            "、".join(labels[i.id] for i in subject_items if labels[i.id]),
            reason=reason,
            note=note,
            variant=_variant(subject_items[0]),
        )
        messages.append(
            OutgoingNotification(
                to_user_id=subject_id,
                from_user_id=actor.id,
                title=copy.title,
                content=copy.content,
            )
        )
    return messages


async def _notify_subjects(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    items: list,
    decision: str,
    context: str,
    dispatcher: Optional[NotificationDispatcher],
    reason: Optional[str] = None,
    note: Optional[str] = None,
) -> bool:
    """One decision notice per affected subject."""
    if not items:
        return True
    return await _deliver(
        db,
        dispatcher,
        items,
        partial(_decision_messages, db, descriptor, actor, items, decision, reason, note),
        context,
    )


# ---------------------------------------------------------------------------
# Learner side
# ---------------------------------------------------------------------------


async def find_own_item(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    key: dict,
    item_id: Optional[uuid.UUID] = None,
):
    model = descriptor.model
    if descriptor.keyed:
        conditions = [getattr(model, column) == key[column] for column in descriptor.key_columns]
        result = await db.execute(
            select(model).where(model.user_id == actor.id, *conditions)
        )
        return result.scalar_one_or_none()

    if item_id is None:
        return None
    item = await db.get(model, item_id)
    if item is None:
        raise ApiError(ErrorCode.NOT_FOUND)
    if item.user_id != actor.id:
        raise ApiError(ErrorCode.FORBIDDEN)
    return item


async def _create_item(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    key: dict,
    payload: dict,
    now: datetime,
):
    """Insert a new pending item; ``None`` if a concurrent insert won the key."""
    item = descriptor.model(
        user_id=actor.id,
        owner_leader_id=actor.leader_id,
        status=descriptor.pending_status,
        **key,
        **payload,
    )
    setattr(item, descriptor.stamp_column, now)
    db.add(item)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        if not descriptor.keyed:
            raise
        return None
    await db.refresh(item)
    return item


async def _resubmit_existing(
    db: AsyncSession,
    descriptor: KindDescriptor,
    item,
    payload: dict,
    now: datetime,
) -> str:
    pending = descriptor.pending_status
    if descriptor.archivable and item.archived_at is not None:
        raise ApiError(ErrorCode.ALREADY_ARCHIVED)

    if item.status == pending:
        if not (descriptor.editable_while_pending and payload):
            return ALREADY_PENDING
        expected = pending
        outcome = UPDATED
        values = {**payload, descriptor.stamp_column: now, "updated_at": now}
    elif item.status in descriptor.resubmit_from:
        expected = item.status
        outcome = CREATED if item.status == ApprovalStatus.DRAFT else RESUBMITTED
        values = {
            **payload,
            "status": pending,
            descriptor.stamp_column: now,
            "updated_at": now,
            "reviewed_by": None,
            "reviewed_at": None,
            "rejection_reason": None,
            "review_note": None,
        }
    else:
        raise ApiError(ErrorCode.ALREADY_REVIEWED)

    if not await _compare_and_set(db, descriptor, item.id, expected, values):
        await db.rollback()
        await db.refresh(item)
        if item.status == pending:
            return ALREADY_PENDING
        raise ApiError(ErrorCode.ALREADY_REVIEWED)

    await db.commit()
    await db.refresh(item)
    return outcome


async def submit(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    *,
    key: Optional[dict] = None,
    payload: Optional[dict] = None,
    item_id: Optional[uuid.UUID] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> SubmitResult:
    """Create, resubmit or update the actor's own item.

    Keyed kinds find the existing item by ``(user, key)``; other kinds create
    a new row unless ``item_id`` names one of the actor's items. Resubmitting
    clears every review field. A pending item is left alone unless the kind
    allows edits while pending.
    """
    if actor.role not in LEARNER_ROLES:
        raise ApiError(ErrorCode.FORBIDDEN)
    key = key or {}
    payload = payload or {}
    now = utc_now()

    item = await find_own_item(db, descriptor, actor, key, item_id)
    if item is None:
        item = await _create_item(db, descriptor, actor, key, payload, now)
        if item is not None:
            outcome = CREATED
        else:
            item = await find_own_item(db, descriptor, actor, key)
            if item is None:
                raise ApiError(ErrorCode.DB_ERROR)
            outcome = await _resubmit_existing(db, descriptor, item, payload, now)
    else:
        outcome = await _resubmit_existing(db, descriptor, item, payload, now)

    if outcome == ALREADY_PENDING:
        return SubmitResult(status=outcome, item=item)

    logger.info(
        "%s %s %s by %s", descriptor.kind.value, item.id, outcome, actor.id
    )
    notified = await _notify_reviewers(db, descriptor, actor, item, outcome, dispatcher)
    return SubmitResult(status=outcome, item=item, notified=notified)


async def delete_own(
    db: AsyncSession, descriptor: KindDescriptor, actor: Actor, item_id: uuid.UUID
) -> None:
    if not descriptor.deletable_by_owner:
        raise ApiError(ErrorCode.INVALID_ACTION)
    item = await db.get(descriptor.model, item_id)
    if item is None:
        raise ApiError(ErrorCode.NOT_FOUND)
    if item.user_id != actor.id:
        raise ApiError(ErrorCode.FORBIDDEN)
    await db.delete(item)
    await db.commit()
    logger.info("%s %s deleted by owner", descriptor.kind.value, item_id)


# ---------------------------------------------------------------------------
# Reviewer side
# ---------------------------------------------------------------------------


async def transition(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    item_id: uuid.UUID,
    action: ReviewAction,
    *,
    reason: Optional[str] = None,
    note: Optional[str] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> TransitionResult:
    """Apply one review decision."""
    require_reviewer(descriptor, actor, action)

    item = await db.get(descriptor.model, item_id)
    if item is None:
        raise ApiError(ErrorCode.NOT_FOUND)

    scope = await resolve_scope(db, actor)
    if not in_scope(actor, scope, item):
        raise ApiError(ErrorCode.FORBIDDEN)

    error = review_error(descriptor, item)
    if error is not None:
        raise ApiError(error)

    values = _review_values(actor, action, reason, note, utc_now())
    if not await _compare_and_set(
        db, descriptor, item.id, descriptor.pending_status, values
    ):
        await db.rollback()
        raise ApiError(ErrorCode.ALREADY_REVIEWED)

    await _apply_side_effects(db, descriptor, actor, [item], action)
    await db.commit()
    await db.refresh(item)
    logger.info(
        "%s %s -> %s by %s",
        descriptor.kind.value,
        item.id,
        values["status"].value,
        actor.id,
    )

    await _after_commit(db, descriptor, [item], action)
    reason_label = values["rejection_reason"].value if values["rejection_reason"] else None
    notified = await _notify_subjects(
        db,
        descriptor,
        actor,
        [item],
        values["status"].value,
        f"{descriptor.kind.value} {item.id} {action.value}",
        dispatcher,
        reason=reason_label,
        note=values["review_note"],
    )
    return TransitionResult(item=item, status=values["status"], notified=notified)


async def transition_many(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    item_ids: Iterable[uuid.UUID],
    action: ReviewAction,
    *,
    reason: Optional[str] = None,
    note: Optional[str] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> BulkTransitionResult:
    """Apply one decision to many items.

    Unknown ids and out-of-scope subjects fail the whole batch before any
    write. Items that already moved on are reported in ``skipped``; the rest
    commit in one transaction.
    """
    require_reviewer(descriptor, actor, action)
    items = await _load_batch(db, descriptor, actor, item_ids)

    values = _review_values(actor, action, reason, note, utc_now())
    updated: list = []
    skipped: list = []
    for item in items:
        error = review_error(descriptor, item)
        if error is None and not await _compare_and_set(
            db, descriptor, item.id, descriptor.pending_status, values
        ):
            error = ErrorCode.ALREADY_REVIEWED
        if error is not None:
            skipped.append(SkippedItem(id=item.id, error=error))
        else:
            updated.append(item)

    if updated:
        await _apply_side_effects(db, descriptor, actor, updated, action)
    await db.commit()
    for item in updated:
        await db.refresh(item)

    logger.info(
        "%s bulk %s by %s: %d updated, %d skipped",
        descriptor.kind.value,
        action.value,
        actor.id,
        len(updated),
        len(skipped),
    )

    await _after_commit(db, descriptor, updated, action)
    reason_label = values["rejection_reason"].value if values["rejection_reason"] else None
    notified = await _notify_subjects(
        db,
        descriptor,
        actor,
        updated,
        values["status"].value,
        f"{descriptor.kind.value} bulk {action.value}",
        dispatcher,
        reason=reason_label,
        note=values["review_note"],
    )
    return BulkTransitionResult(
        updated=[item.id for item in updated], skipped=skipped, notified=notified
    )


async def archive_many(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    item_ids: Iterable[uuid.UUID],
    *,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> BulkTransitionResult:
    """Archive resolved items. Archiving is terminal and happens once."""
    if not descriptor.archivable:
        raise ApiError(ErrorCode.INVALID_ACTION)
    require_reviewer(descriptor, actor)
    items = await _load_batch(db, descriptor, actor, item_ids)

    model = descriptor.model
    now = utc_now()
    updated: list = []
    skipped: list = []
    for item in items:
        if item.archived_at is not None:
            skipped.append(SkippedItem(id=item.id, error=ErrorCode.ALREADY_ARCHIVED))
            continue
        if item.status not in RESOLVED_STATUSES:
            skipped.append(SkippedItem(id=item.id, error=ErrorCode.ALREADY_PENDING))
            continue
        result = await db.execute(
            update(model)
            .where(
                model.id == item.id,
                model.archived_at.is_(None),
                model.status.in_(RESOLVED_STATUSES),
            )
            .values(archived_at=now, archived_by=actor.id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            updated.append(item)
        else:
            skipped.append(SkippedItem(id=item.id, error=ErrorCode.ALREADY_ARCHIVED))

    await db.commit()
    for item in updated:
        await db.refresh(item)
    logger.info(
        "%s archive by %s: %d archived, %d skipped",
        descriptor.kind.value,
        actor.id,
        len(updated),
        len(skipped),
    )

    notified = await _notify_subjects(
        db,
        descriptor,
        actor,
        updated,
        "archived",
        f"{descriptor.kind.value} archive",
        dispatcher,
    )
    return BulkTransitionResult(
        updated=[item.id for item in updated], skipped=skipped, notified=notified
    )


async def delete_many(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    item_ids: Iterable[uuid.UUID],
) -> list:
    """Hard-delete items in scope. No notification is sent."""
    if not descriptor.deletable_by_manager:
        raise ApiError(ErrorCode.INVALID_ACTION)
    require_reviewer(descriptor, actor)
    items = await _load_batch(db, descriptor, actor, item_ids)

    ids = [item.id for item in items]
    model = descriptor.model
    await db.execute(
        delete(model)
        .where(model.id.in_(ids))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info("%s deleted %d item(s) by %s", descriptor.kind.value, len(ids), actor.id)
    return ids
