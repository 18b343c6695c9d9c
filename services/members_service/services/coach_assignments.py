"""Coach assignment writes (one active coach per learner)."""

import uuid
from typing import Optional

from libs.auth.models import Actor
from libs.auth.roles import ADMIN_ROLES, COACHABLE_ROLES, SystemRole
from libs.common.datetime_utils import utc_now
from libs.common.error_handler import ApiError, ErrorCode
from libs.common.logging import get_logger
from services.members_service.models import CoachAssignment
from services.members_service.services import graph_store
from services.members_service.services.scope import resolve_scope
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def assign_coach(
    db: AsyncSession,
    *,
    actor: Actor,
    user_id: uuid.UUID,
    coach_id: Optional[uuid.UUID],
) -> Optional[CoachAssignment]:
    """Set or clear the coach of ``user_id``.

    Returns the assignment, or ``None`` when it was removed.
    """
    if actor.role not in ADMIN_ROLES:
        raise ApiError(ErrorCode.FORBIDDEN)

    target = await graph_store.get_profile(db, user_id)
    if target is None:
        raise ApiError(ErrorCode.NOT_FOUND)
    if target.system_role not in COACHABLE_ROLES:
        raise ApiError(ErrorCode.INVALID_TARGET_ROLE)

    if coach_id is not None:
        coach = await graph_store.get_profile(db, coach_id)
        if coach is None:
            raise ApiError(ErrorCode.COACH_NOT_FOUND)
        if coach.system_role is not SystemRole.COACH:
            raise ApiError(ErrorCode.INVALID_COACH_ROLE)

    scope = await resolve_scope(db, actor)
    if not scope.contains(user_id):
        raise ApiError(ErrorCode.FORBIDDEN)
    if coach_id is not None and not scope.contains(coach_id):
        raise ApiError(ErrorCode.FORBIDDEN)

    if coach_id is None:
        await db.execute(
            delete(CoachAssignment).where(CoachAssignment.assigned_user_id == user_id)
        )
        await db.commit()
        logger.info("Coach unassigned from %s by %s", user_id, actor.id)
        return None

    result = await db.execute(
        select(CoachAssignment).where(CoachAssignment.assigned_user_id == user_id)
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        assignment = CoachAssignment(
            assigned_user_id=user_id, coach_id=coach_id, assigned_by=actor.id
        )
        db.add(assignment)
    else:
        assignment.coach_id = coach_id
        assignment.assigned_by = actor.id
        assignment.updated_at = utc_now()

    await db.commit()
    await db.refresh(assignment)
    logger.info("Coach %s assigned to %s by %s", coach_id, user_id, actor.id)
    return assignment


async def list_assignments_in_scope(
    db: AsyncSession, *, actor: Actor
) -> list[CoachAssignment]:
    """Assignments whose learner the actor may see."""
    scope = await resolve_scope(db, actor)
    query = select(CoachAssignment).order_by(CoachAssignment.created_at.desc())
    if not scope.unrestricted:
        if not scope.ids:
            return []
        query = query.where(CoachAssignment.assigned_user_id.in_(scope.ids))
    result = await db.execute(query)
    return list(result.scalars().all())
