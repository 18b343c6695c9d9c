"""Read queries over the identity graph.

Three edge sets define who may act on whom:
- ``profiles.leader_id``: org tree (leader -> sub-leaders -> learners)
- ``coach_assignments``: flat learner -> coach edge
- ``profiles.created_by``: assistant that provisioned the account

Everything here is a plain read; scope rules live in ``scope.py``.
"""

import uuid
from typing import Iterable, Optional

from libs.auth.roles import SystemRole, role_aliases
from services.members_service.models import CoachAssignment, Profile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> Optional[Profile]:
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    return result.scalar_one_or_none()


async def list_children(
    db: AsyncSession, leader_ids: Iterable[uuid.UUID]
) -> list[tuple[uuid.UUID, uuid.UUID]]:
    """Return ``(child_id, leader_id)`` edges for every child of ``leader_ids``."""
    ids = list(leader_ids)
    if not ids:
        return []
    result = await db.execute(
        select(Profile.id, Profile.leader_id).where(Profile.leader_id.in_(ids))
    )
    return [(row.id, row.leader_id) for row in result.all()]


async def fetch_coach_assigned_user_ids(
    db: AsyncSession, coach_id: uuid.UUID
) -> set[uuid.UUID]:
    result = await db.execute(
        select(CoachAssignment.assigned_user_id).where(
            CoachAssignment.coach_id == coach_id
        )
    )
    return set(result.scalars().all())


async def get_assigned_coach_id(
    db: AsyncSession, user_id: uuid.UUID
) -> Optional[uuid.UUID]:
    result = await db.execute(
        select(CoachAssignment.coach_id).where(
            CoachAssignment.assigned_user_id == user_id
        )
    )
    return result.scalar_one_or_none()


async def fetch_assistant_created_user_ids(
    db: AsyncSession,
    assistant_id: uuid.UUID,
    limit: int,
    leader_id: Optional[uuid.UUID] = None,
) -> tuple[set[uuid.UUID], bool]:
    """Accounts provisioned by an assistant, optionally within one leader's org.

    Returns the newest ``limit`` ids and whether older ones were left out.
    """
    query = select(Profile.id).where(Profile.created_by == assistant_id)
    if leader_id is not None:
        query = query.where(Profile.leader_id == leader_id)
    query = query.order_by(Profile.created_at.desc()).limit(limit + 1)
    result = await db.execute(query)
    ids = list(result.scalars().all())
    return set(ids[:limit]), len(ids) > limit


async def fetch_super_admin_ids(db: AsyncSession) -> list[uuid.UUID]:
    result = await db.execute(
        select(Profile.id).where(
            Profile.role.in_(role_aliases(SystemRole.SUPER_ADMIN))
        )
    )
    return list(result.scalars().all())
