"""Course catalog, file library and granted file permissions."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column


class Course(Base):
    """One numbered lesson; ids run 1..COURSE_COUNT."""

    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    title_zh: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    title_en: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    content_bucket: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    content_path: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, default=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    @property
    def label(self) -> str:
        return f"#{self.id} {self.title_zh or self.title_en or ''}".strip()

    def __repr__(self):
        return f"<Course {self.id}>"


class LibraryFile(Base):
    """A downloadable file gated behind an access request."""

    __tablename__ = "library_files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    storage_bucket: Mapped[str] = mapped_column(String, nullable=False)
    storage_path: Mapped[str] = mapped_column(String, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    @property
    def label(self) -> str:
        return f"{self.category or ''} {self.name}".strip()

    def __repr__(self):
        return f"<LibraryFile {self.id} {self.name}>"


class FilePermission(Base):
    """Download grant created when a file access request is approved."""

    __tablename__ = "file_permissions"
    __table_args__ = (
        UniqueConstraint("file_id", "grantee_user_id", name="uq_file_permission"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    file_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("library_files.id", ondelete="CASCADE"), nullable=False
    )
    grantee_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    granted_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
