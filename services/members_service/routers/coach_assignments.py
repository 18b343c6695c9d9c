"""Admin routes for coach assignment and scope inspection."""

from fastapi import APIRouter, Depends
from libs.auth.dependencies import require_admin, require_manager
from libs.auth.models import Actor
from libs.db.session import get_async_db
from services.members_service.schemas import (
    CoachAssignmentListResponse,
    CoachAssignmentResponse,
    CoachAssignRequest,
    CoachAssignResult,
    ScopeResponse,
)
from services.members_service.services.coach_assignments import (
    assign_coach,
    list_assignments_in_scope,
)
from services.members_service.services.scope import resolve_scope
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/members/admin", tags=["admin-members"])


@router.post("/coaches/assign", response_model=CoachAssignResult)
async def assign_coach_endpoint(
    payload: CoachAssignRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Set or clear a learner's coach."""
    assignment = await assign_coach(
        db, actor=actor, user_id=payload.user_id, coach_id=payload.coach_id
    )
    return CoachAssignResult(
        assignment=CoachAssignmentResponse.model_validate(assignment)
        if assignment
        else None
    )


@router.get("/coaches/assigned", response_model=CoachAssignmentListResponse)
async def list_assigned_coaches(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    assignments = await list_assignments_in_scope(db, actor=actor)
    return CoachAssignmentListResponse(
        items=[CoachAssignmentResponse.model_validate(a) for a in assignments]
    )


@router.get("/scope", response_model=ScopeResponse)
async def get_my_scope(
    actor: Actor = Depends(require_manager),
    db: AsyncSession = Depends(get_async_db),
):
    """Return the caller's resolved scope."""
    scope = await resolve_scope(db, actor)
    return ScopeResponse(
        role=actor.role.value,
        unrestricted=scope.unrestricted,
        user_ids=sorted(scope.ids or (), key=str),
        cycle_detected=scope.cycle_detected,
        truncated=scope.truncated,
    )
