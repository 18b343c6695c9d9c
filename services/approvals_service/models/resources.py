"""The approvable resource tables.

Every table shares the review columns in ``ApprovableMixin``; state changes
go through compare-and-set updates on ``status`` in ``services/workflow.py``.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.approvals_service.models.enums import (
    ApprovalStatus,
    RejectionReason,
    TradeSubmissionType,
    enum_values,
)
from sqlalchemy import JSON, Boolean, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, declared_attr, mapped_column


class ApprovableMixin:
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    @declared_attr
    def user_id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
        )

    # The subject's leader when the item was created; fast-path for scoping.
    owner_leader_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, index=True
    )

    status: Mapped[ApprovalStatus] = mapped_column(
        SAEnum(
            ApprovalStatus,
            name="approval_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
        index=True,
    )

    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejection_reason: Mapped[Optional[RejectionReason]] = mapped_column(
        SAEnum(
            RejectionReason,
            name="rejection_reason_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=True,
    )
    review_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<{type(self).__name__} {self.id} status={self.status}>"


class CourseAccess(ApprovableMixin, Base):
    __tablename__ = "course_access"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_course_access_user_course"),
    )

    course_id: Mapped[int] = mapped_column(Integer, nullable=False)
    requested_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class FileAccessRequest(ApprovableMixin, Base):
    __tablename__ = "file_access_requests"
    __table_args__ = (
        UniqueConstraint("user_id", "file_id", name="uq_file_access_user_file"),
    )

    file_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("library_files.id", ondelete="CASCADE"), nullable=False
    )
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    requested_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class TradeSubmission(ApprovableMixin, Base):
    __tablename__ = "trade_submissions"

    type: Mapped[TradeSubmissionType] = mapped_column(
        SAEnum(
            TradeSubmissionType,
            name="trade_submission_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # [{"bucket": ..., "path": ..., "name": ...}]
    attachments: Mapped[list] = mapped_column(JSON, default=list)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    archived_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    archived_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)


class ClassicTrade(ApprovableMixin, Base):
    __tablename__ = "classic_trades"

    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attachments: Mapped[list] = mapped_column(JSON, default=list)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class WeeklySummary(ApprovableMixin, Base):
    __tablename__ = "weekly_summaries"
    __table_args__ = (
        UniqueConstraint("user_id", "week_start", name="uq_weekly_summary_user_week"),
    )

    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attachments: Mapped[list] = mapped_column(JSON, default=list)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class CourseNote(ApprovableMixin, Base):
    __tablename__ = "course_notes"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_course_note_user_course"),
    )

    course_id: Mapped[int] = mapped_column(Integer, nullable=False)
    content_md: Mapped[str] = mapped_column(Text, default="")
    content_html: Mapped[str] = mapped_column(Text, default="")
    # Null until the learner submits; the sequencing guard reads this.
    submitted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class LadderAuthorization(ApprovableMixin, Base):
    """One row per learner; ``enabled`` follows the latest review decision."""

    __tablename__ = "ladder_authorizations"
    __table_args__ = (UniqueConstraint("user_id", name="uq_ladder_authorization_user"),)

    enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requested_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
