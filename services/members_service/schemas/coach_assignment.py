"""Coach assignment and scope schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CoachAssignRequest(BaseModel):
    """Assign ``coach_id`` to ``user_id``; ``coach_id=None`` unassigns."""

    user_id: uuid.UUID
    coach_id: Optional[uuid.UUID] = None


class CoachAssignmentResponse(BaseModel):
    assigned_user_id: uuid.UUID
    coach_id: uuid.UUID
    assigned_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CoachAssignResult(BaseModel):
    ok: bool = True
    assignment: Optional[CoachAssignmentResponse] = None


class CoachAssignmentListResponse(BaseModel):
    ok: bool = True
    items: list[CoachAssignmentResponse]


class ScopeResponse(BaseModel):
    """Resolved scope of the calling actor, for support tooling."""

    ok: bool = True
    role: str
    unrestricted: bool
    user_ids: list[uuid.UUID]
    cycle_detected: bool = False
    truncated: bool = False
