"""Members Service schemas package.

Re-exports all schemas so that router files use a single import namespace.
"""

from services.members_service.schemas.coach_assignment import (  # noqa: F401
    CoachAssignmentListResponse,
    CoachAssignmentResponse,
    CoachAssignRequest,
    CoachAssignResult,
    ScopeResponse,
)

__all__ = [
    "CoachAssignRequest",
    "CoachAssignResult",
    "CoachAssignmentListResponse",
    "CoachAssignmentResponse",
    "ScopeResponse",
]
