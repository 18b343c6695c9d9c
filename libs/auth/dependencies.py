from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError
from sqlalchemy import String, Uuid, column, select, table
from sqlalchemy.ext.asyncio import AsyncSession

from libs.auth.models import Actor, SessionClaims
from libs.auth.roles import (
    ADMIN_ROLES,
    LEARNER_ROLES,
    MANAGER_ROLES,
    normalize_role,
)
from libs.common.config import get_settings
from libs.common.error_handler import ApiError, ErrorCode
from libs.common.logging import get_logger
from libs.db.session import get_async_db

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)

# Read-only view of the profiles table owned by members_service.
_profiles = table(
    "profiles",
    column("id", Uuid),
    column("email", String),
    column("full_name", String),
    column("role", String),
    column("leader_id", Uuid),
    column("created_by", Uuid),
    column("status", String),
    column("session_id", String),
)

BLOCKED_STATUSES = frozenset({"frozen", "deleted"})


def decode_session_token(token: str) -> SessionClaims:
    """Verify a session token and return its claims."""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.SESSION_JWT_SECRET,
            algorithms=[settings.SESSION_JWT_ALGORITHM],
            options={"verify_aud": False},
        )
        return SessionClaims(**payload)
    except (JWTError, ValidationError):
        raise ApiError(ErrorCode.UNAUTHORIZED)


async def get_session_claims(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> SessionClaims:
    """
    Read the session token from the bearer header or the session cookie.
    """
    token = credentials.credentials if credentials else None
    if not token:
        token = request.cookies.get(get_settings().SESSION_COOKIE_NAME)
    if not token:
        raise ApiError(ErrorCode.UNAUTHORIZED)
    return decode_session_token(token)


async def load_actor(db: AsyncSession, claims: SessionClaims) -> Actor:
    """Resolve session claims to an active profile."""
    result = await db.execute(select(_profiles).where(_profiles.c.id == claims.user_id))
    row = result.mappings().first()
    if row is None:
        raise ApiError(ErrorCode.UNAUTHORIZED)

    if row["session_id"] and row["session_id"] != claims.session_id:
        raise ApiError(ErrorCode.UNAUTHORIZED)

    if (row["status"] or "active") in BLOCKED_STATUSES:
        raise ApiError(ErrorCode.FROZEN)

    role = normalize_role(row["role"])
    if role is None:
        logger.warning("Profile %s has unrecognised role %r", row["id"], row["role"])
        raise ApiError(ErrorCode.FORBIDDEN)

    return Actor(
        id=row["id"],
        role=role,
        leader_id=row["leader_id"],
        created_by=row["created_by"],
        email=row["email"],
        full_name=row["full_name"],
    )


async def get_current_actor(
    claims: Annotated[SessionClaims, Depends(get_session_claims)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
) -> Actor:
    """
    Validate the session and return the acting profile.
    """
    return await load_actor(db, claims)


def _require_roles(allowed: frozenset):
    async def dependency(
        actor: Annotated[Actor, Depends(get_current_actor)],
    ) -> Actor:
        if actor.role not in allowed:
            raise ApiError(ErrorCode.FORBIDDEN)
        return actor

    return dependency


require_learner = _require_roles(LEARNER_ROLES)
require_manager = _require_roles(MANAGER_ROLES)
require_admin = _require_roles(ADMIN_ROLES)
