import uuid
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from services.approvals_service.models import (
    ApprovalStatus,
    ReviewAction,
    TradeSubmissionType,
)

MAX_BULK_IDS = 500


class Attachment(BaseModel):
    bucket: str = Field(..., min_length=1, max_length=100)
    path: str = Field(..., min_length=1, max_length=1000)
    name: Optional[str] = Field(None, max_length=300)


# ===== ITEM SCHEMAS =====
class ApprovalItemResponse(BaseModel):
    """One approvable item of any kind; kind-specific fields are optional."""

    id: uuid.UUID
    user_id: uuid.UUID
    owner_leader_id: Optional[uuid.UUID] = None
    status: ApprovalStatus
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    review_note: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    course_id: Optional[int] = None
    file_id: Optional[uuid.UUID] = None
    message: Optional[str] = None
    type: Optional[TradeSubmissionType] = None
    note: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    week_start: Optional[date] = None
    summary: Optional[str] = None
    content_md: Optional[str] = None
    content_html: Optional[str] = None
    attachments: Optional[list[Any]] = None
    requested_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    archived_by: Optional[uuid.UUID] = None
    enabled: Optional[bool] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("rejection_reason", mode="before")
    @classmethod
    def reason_label(cls, v):
        return getattr(v, "value", v)


class ItemListResponse(BaseModel):
    ok: bool = True
    items: list[ApprovalItemResponse]
    total: int
    page: int
    page_size: int


class SubmitResponse(BaseModel):
    ok: bool = True
    status: str
    item: ApprovalItemResponse
    notified: bool = True
    warning: Optional[str] = None


class PendingCountsResponse(BaseModel):
    ok: bool = True
    counts: dict[str, int]


class DownloadResponse(BaseModel):
    ok: bool = True
    url: str


# ===== LEARNER REQUESTS =====
class FileAccessCreate(BaseModel):
    message: Optional[str] = Field(None, max_length=500)


class TradeSubmissionCreate(BaseModel):
    type: TradeSubmissionType
    note: Optional[str] = Field(None, max_length=2000)
    attachments: list[Attachment] = Field(default_factory=list, max_length=20)
    # Set to resubmit one of your own rejected submissions.
    submission_id: Optional[uuid.UUID] = None


class ClassicTradeCreate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=20000)
    attachments: list[Attachment] = Field(default_factory=list, max_length=20)
    # Set to edit one of your own entries while it is still pending.
    entry_id: Optional[uuid.UUID] = None


class WeeklySummaryCreate(BaseModel):
    week_start: date
    summary: Optional[str] = Field(None, max_length=20000)
    attachments: list[Attachment] = Field(default_factory=list, max_length=20)


class CourseNoteUpdate(BaseModel):
    content_md: str = Field("", max_length=200_000)
    content_html: str = Field("", max_length=200_000)
    submit: bool = False


# ===== REVIEW REQUESTS =====
class _ReviewFields(BaseModel):
    action: ReviewAction
    # Free text is accepted and normalized onto the closed reason list.
    reason: Optional[str] = Field(None, max_length=200)
    note: Optional[str] = Field(None, max_length=2000)

    @field_validator("note")
    @classmethod
    def strip_note(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class ReviewRequest(_ReviewFields):
    id: uuid.UUID


class BulkReviewRequest(_ReviewFields):
    ids: list[uuid.UUID] = Field(..., min_length=1, max_length=MAX_BULK_IDS)


class IdsRequest(BaseModel):
    ids: list[uuid.UUID] = Field(..., min_length=1, max_length=MAX_BULK_IDS)


class ReviewResponse(BaseModel):
    ok: bool = True
    id: uuid.UUID
    status: ApprovalStatus
    notified: bool = True
    warning: Optional[str] = None


class SkippedItemResponse(BaseModel):
    id: uuid.UUID
    error: str


class BulkReviewResponse(BaseModel):
    ok: bool = True
    updated: list[uuid.UUID]
    skipped: list[SkippedItemResponse]
    notified: bool = True
    warning: Optional[str] = None


class DeleteResponse(BaseModel):
    ok: bool = True
    deleted: list[uuid.UUID]
