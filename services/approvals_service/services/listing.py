"""Scope-filtered listings and pending counts for reviewers and learners."""

from typing import Optional

from libs.auth.models import Actor
from libs.auth.roles import SystemRole
from libs.common.error_handler import ApiError, ErrorCode
from services.approvals_service.kinds import KINDS, KindDescriptor
from services.approvals_service.models import ApprovalStatus
from services.members_service.services.scope import ScopeSet, resolve_scope
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession


def _scope_filters(
    descriptor: KindDescriptor, actor: Actor, scope: ScopeSet
) -> Optional[list]:
    """WHERE clauses restricting a reviewer to their scope.

    ``None`` means nothing can match.
    """
    model = descriptor.model
    if scope.unrestricted:
        return []
    clauses = []
    if scope.ids:
        clauses.append(model.user_id.in_(scope.ids))
    if actor.role is SystemRole.LEADER:
        clauses.append(model.owner_leader_id == actor.id)
    if not clauses:
        return None
    return [or_(*clauses)]


def _visibility_filters(descriptor: KindDescriptor, include_archived: bool) -> list:
    model = descriptor.model
    # Drafts are private to the learner.
    filters = [model.status != ApprovalStatus.DRAFT]
    if descriptor.archivable and not include_archived:
        filters.append(model.archived_at.is_(None))
    return filters


async def _page(db: AsyncSession, model, filters: list, page: int, page_size: int):
    total = await db.scalar(select(func.count()).select_from(model).where(*filters))
    result = await db.execute(
        select(model)
        .where(*filters)
        .order_by(model.created_at.desc(), model.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total or 0


async def list_for_reviewer(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    *,
    status: Optional[ApprovalStatus] = None,
    include_archived: bool = False,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list, int]:
    if actor.role not in descriptor.reviewer_roles:
        raise ApiError(ErrorCode.FORBIDDEN)

    scope = await resolve_scope(db, actor)
    scope_filters = _scope_filters(descriptor, actor, scope)
    if scope_filters is None:
        return [], 0

    filters = scope_filters + _visibility_filters(descriptor, include_archived)
    if status is not None:
        filters.append(descriptor.model.status == status)
    return await _page(db, descriptor.model, filters, page, page_size)


async def list_mine(
    db: AsyncSession,
    descriptor: KindDescriptor,
    actor: Actor,
    *,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list, int]:
    model = descriptor.model
    return await _page(db, model, [model.user_id == actor.id], page, page_size)


async def pending_counts(db: AsyncSession, actor: Actor) -> dict[str, int]:
    """Pending items per kind the actor may review, within their scope."""
    scope = await resolve_scope(db, actor)
    counts: dict[str, int] = {}
    for kind, descriptor in KINDS.items():
        if actor.role not in descriptor.reviewer_roles:
            continue
        scope_filters = _scope_filters(descriptor, actor, scope)
        if scope_filters is None:
            counts[kind.value] = 0
            continue
        model = descriptor.model
        filters = scope_filters + _visibility_filters(descriptor, False)
        filters.append(model.status == descriptor.pending_status)
        counts[kind.value] = (
            await db.scalar(select(func.count()).select_from(model).where(*filters))
            or 0
        )
    return counts
