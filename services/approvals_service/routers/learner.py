"""Learner-facing routes: request, submit, complete and download."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_learner
from libs.auth.models import Actor
from libs.common.config import get_settings
from libs.common.storage import CachedStorageSigner
from libs.db.session import get_async_db
from services.approvals_service.kinds import KINDS, get_kind
from services.approvals_service.models import ResourceKind
from services.approvals_service.routers._helpers import list_response, submit_response
from services.approvals_service.schemas import (
    ApprovalItemResponse,
    ClassicTradeCreate,
    CourseNoteUpdate,
    DownloadResponse,
    FileAccessCreate,
    ItemListResponse,
    SubmitResponse,
    TradeSubmissionCreate,
    WeeklySummaryCreate,
)
from services.approvals_service.services import courses, downloads, files, listing
from services.approvals_service.services.workflow import delete_own, submit
from services.communications_service.services.dispatcher import (
    NotificationDispatcher,
    get_dispatcher,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/approvals", tags=["approvals"])
settings = get_settings()


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


@router.post("/courses/{course_id}/request", response_model=SubmitResponse)
async def request_course(
    course_id: int,
    actor: Actor = Depends(require_learner),
    db: AsyncSession = Depends(get_async_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Request access to a lesson; blocked until the previous summary is in."""
    result = await courses.request_course_access(db, actor, course_id, dispatcher)
    return submit_response(result)


@router.post("/courses/{course_id}/complete", response_model=ApprovalItemResponse)
async def complete_course(
    course_id: int,
    actor: Actor = Depends(require_learner),
    db: AsyncSession = Depends(get_async_db),
):
    access = await courses.complete_course(db, actor, course_id)
    return ApprovalItemResponse.model_validate(access)


@router.put("/courses/{course_id}/notes", response_model=SubmitResponse)
async def save_course_note(
    course_id: int,
    payload: CourseNoteUpdate,
    actor: Actor = Depends(require_learner),
    db: AsyncSession = Depends(get_async_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Save a lesson summary draft, or submit it when ``submit`` is true."""
    result = await courses.save_course_note(
        db,
        actor,
        course_id,
        content_md=payload.content_md,
        content_html=payload.content_html,
        submit=payload.submit,
        dispatcher=dispatcher,
    )
    return submit_response(result)


@router.get("/courses/{course_id}/content", response_model=DownloadResponse)
async def course_content(
    course_id: int,
    actor: Actor = Depends(require_learner),
    db: AsyncSession = Depends(get_async_db),
    signer: CachedStorageSigner = Depends(downloads.get_storage_signer),
):
    url = await downloads.course_content_url(db, actor, course_id, signer)
    return DownloadResponse(url=url)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


@router.post("/files/{file_id}/request", response_model=SubmitResponse)
async def request_file(
    file_id: uuid.UUID,
    payload: Optional[FileAccessCreate] = None,
    actor: Actor = Depends(require_learner),
    db: AsyncSession = Depends(get_async_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = await files.request_file_access(
        db, actor, file_id, payload.message if payload else None, dispatcher
    )
    return submit_response(result)


@router.get("/files/{file_id}/download", response_model=DownloadResponse)
async def download_file(
    file_id: uuid.UUID,
    actor: Actor = Depends(require_learner),
    db: AsyncSession = Depends(get_async_db),
    signer: CachedStorageSigner = Depends(downloads.get_storage_signer),
):
    url = await downloads.file_download_url(db, actor, file_id, signer)
    return DownloadResponse(url=url)


# ---------------------------------------------------------------------------
# Trade submissions, classic trades, weekly summaries, ladder
# ---------------------------------------------------------------------------


@router.post("/trade-submissions", response_model=SubmitResponse)
async def create_trade_submission(
    payload: TradeSubmissionCreate,
    actor: Actor = Depends(require_learner),
    db: AsyncSession = Depends(get_async_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = await submit(
        db,
        KINDS[ResourceKind.TRADE_SUBMISSIONS],
        actor,
        payload={
            "type": payload.type,
            "note": payload.note,
            "attachments": [a.model_dump() for a in payload.attachments],
        },
        item_id=payload.submission_id,
        dispatcher=dispatcher,
    )
    return submit_response(result)


@router.post("/classic-trades", response_model=SubmitResponse)
async def create_classic_trade(
    payload: ClassicTradeCreate,
    actor: Actor = Depends(require_learner),
    db: AsyncSession = Depends(get_async_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = await submit(
        db,
        KINDS[ResourceKind.CLASSIC_TRADES],
        actor,
        payload={
            "title": payload.title,
            "description": payload.description,
            "attachments": [a.model_dump() for a in payload.attachments],
        },
        item_id=payload.entry_id,
        dispatcher=dispatcher,
    )
    return submit_response(result)


@router.delete("/classic-trades/{entry_id}")
async def delete_classic_trade(
    entry_id: uuid.UUID,
    actor: Actor = Depends(require_learner),
    db: AsyncSession = Depends(get_async_db),
):
    await delete_own(db, KINDS[ResourceKind.CLASSIC_TRADES], actor, entry_id)
    return {"ok": True}


@router.post("/weekly-summaries", response_model=SubmitResponse)
async def submit_weekly_summary(
    payload: WeeklySummaryCreate,
    actor: Actor = Depends(require_learner),
    db: AsyncSession = Depends(get_async_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = await submit(
        db,
        KINDS[ResourceKind.WEEKLY_SUMMARIES],
        actor,
        key={"week_start": payload.week_start},
        payload={
            "summary": payload.summary,
            "attachments": [a.model_dump() for a in payload.attachments],
        },
        dispatcher=dispatcher,
    )
    return submit_response(result)


@router.post("/ladder/request", response_model=SubmitResponse)
async def request_ladder(
    actor: Actor = Depends(require_learner),
    db: AsyncSession = Depends(get_async_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Ask for ladder access; a rejected request may be sent again."""
    result = await submit(
        db, KINDS[ResourceKind.LADDER_AUTHORIZATIONS], actor, dispatcher=dispatcher
    )
    return submit_response(result)


# ---------------------------------------------------------------------------
# Own items
# ---------------------------------------------------------------------------


@router.get("/{kind}/mine", response_model=ItemListResponse)
async def list_my_items(
    kind: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    actor: Actor = Depends(require_learner),
    db: AsyncSession = Depends(get_async_db),
):
    items, total = await listing.list_mine(
        db, get_kind(kind), actor, page=page, page_size=page_size
    )
    return list_response(items, total, page, page_size)
