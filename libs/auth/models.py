import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from libs.auth.roles import SystemRole


class SessionClaims(BaseModel):
    """
    Claims carried by the session token issued at login.
    """

    user_id: uuid.UUID = Field(..., alias="sub")
    session_id: Optional[str] = Field(None, alias="sid")

    model_config = ConfigDict(populate_by_name=True)


class Actor(BaseModel):
    """
    The authenticated profile performing an action.
    """

    id: uuid.UUID
    role: SystemRole
    leader_id: Optional[uuid.UUID] = None
    created_by: Optional[uuid.UUID] = None
    email: Optional[str] = None
    full_name: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def label(self) -> str:
        """Display label used in notification copy."""
        return self.full_name or self.email or str(self.id)[:6]
