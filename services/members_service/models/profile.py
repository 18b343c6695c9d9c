"""Identity graph tables: profiles and coach assignments."""

import uuid
from datetime import datetime
from typing import Optional

from libs.auth.roles import SystemRole, normalize_role
from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.members_service.models.enums import (
    AccountStatus,
    StudentStatus,
    enum_values,
)
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Profile(Base):
    """A learner or staff account.

    ``leader_id`` is the back-edge of the org tree; ``created_by`` records the
    assistant that provisioned the account.
    """

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[Optional[str]] = mapped_column(String, unique=True, nullable=True)
    full_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Stored as free text; legacy rows carry aliases. Use ``system_role``.
    role: Mapped[str] = mapped_column(
        String, nullable=False, default=SystemRole.STUDENT.value
    )
    leader_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=True, index=True
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=True, index=True
    )

    status: Mapped[AccountStatus] = mapped_column(
        SAEnum(
            AccountStatus,
            name="account_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=AccountStatus.ACTIVE,
        nullable=False,
    )
    student_status: Mapped[StudentStatus] = mapped_column(
        SAEnum(
            StudentStatus,
            name="student_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=StudentStatus.NORMAL,
        nullable=False,
    )
    session_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    @property
    def system_role(self) -> Optional[SystemRole]:
        return normalize_role(self.role)

    @property
    def label(self) -> str:
        return self.full_name or self.email or str(self.id)[:6]

    def __repr__(self):
        return f"<Profile {self.id} role={self.role}>"


class CoachAssignment(Base):
    """At most one coach per learner; upserted on ``assigned_user_id``."""

    __tablename__ = "coach_assignments"

    assigned_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    coach_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<CoachAssignment user={self.assigned_user_id} coach={self.coach_id}>"
