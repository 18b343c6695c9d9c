"""Reviewer routes: scoped listings, single and bulk review, archive, delete."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_manager
from libs.auth.models import Actor
from libs.common.config import get_settings
from libs.db.session import get_async_db
from services.approvals_service.kinds import KINDS, get_kind
from services.approvals_service.models import ApprovalStatus, ResourceKind
from services.approvals_service.routers._helpers import list_response, notify_warning
from services.approvals_service.schemas import (
    BulkReviewRequest,
    BulkReviewResponse,
    DeleteResponse,
    IdsRequest,
    ItemListResponse,
    PendingCountsResponse,
    ReviewRequest,
    ReviewResponse,
    SkippedItemResponse,
)
from services.approvals_service.services import listing, workflow
from services.communications_service.services.dispatcher import (
    NotificationDispatcher,
    get_dispatcher,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/approvals/admin", tags=["approvals-admin"])
settings = get_settings()


def _bulk_response(result: workflow.BulkTransitionResult) -> BulkReviewResponse:
    return BulkReviewResponse(
        updated=result.updated,
        skipped=[
            SkippedItemResponse(id=s.id, error=s.error.value) for s in result.skipped
        ],
        notified=result.notified,
        warning=notify_warning(result.notified),
    )


@router.get("/pending-counts", response_model=PendingCountsResponse)
async def pending_counts(
    actor: Actor = Depends(require_manager),
    db: AsyncSession = Depends(get_async_db),
):
    """Pending items per kind, within the caller's scope."""
    return PendingCountsResponse(counts=await listing.pending_counts(db, actor))


@router.post("/trade_submissions/archive", response_model=BulkReviewResponse)
async def archive_trade_submissions(
    payload: IdsRequest,
    actor: Actor = Depends(require_manager),
    db: AsyncSession = Depends(get_async_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = await workflow.archive_many(
        db,
        KINDS[ResourceKind.TRADE_SUBMISSIONS],
        actor,
        payload.ids,
        dispatcher=dispatcher,
    )
    return _bulk_response(result)


@router.post("/trade_submissions/delete", response_model=DeleteResponse)
async def delete_trade_submissions(
    payload: IdsRequest,
    actor: Actor = Depends(require_manager),
    db: AsyncSession = Depends(get_async_db),
):
    deleted = await workflow.delete_many(
        db, KINDS[ResourceKind.TRADE_SUBMISSIONS], actor, payload.ids
    )
    return DeleteResponse(deleted=deleted)


@router.get("/{kind}", response_model=ItemListResponse)
async def list_items(
    kind: str,
    status: Optional[ApprovalStatus] = None,
    include_archived: bool = False,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    actor: Actor = Depends(require_manager),
    db: AsyncSession = Depends(get_async_db),
):
    """List items of one kind whose subject is in the caller's scope."""
    items, total = await listing.list_for_reviewer(
        db,
        get_kind(kind),
        actor,
        status=status,
        include_archived=include_archived,
        page=page,
        page_size=page_size,
    )
    return list_response(items, total, page, page_size)


@router.post("/{kind}/review", response_model=ReviewResponse)
async def review_item(
    kind: str,
    payload: ReviewRequest,
    actor: Actor = Depends(require_manager),
    db: AsyncSession = Depends(get_async_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = await workflow.transition(
        db,
        get_kind(kind),
        actor,
        payload.id,
        payload.action,
        reason=payload.reason,
        note=payload.note,
        dispatcher=dispatcher,
    )
    return ReviewResponse(
        id=result.item.id,
        status=result.status,
        notified=result.notified,
        warning=notify_warning(result.notified),
    )


@router.post("/{kind}/review-bulk", response_model=BulkReviewResponse)
async def review_items_bulk(
    kind: str,
    payload: BulkReviewRequest,
    actor: Actor = Depends(require_manager),
    db: AsyncSession = Depends(get_async_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Review many items at once.

    The whole batch fails on an unknown id or any out-of-scope subject;
    items that already moved on come back in ``skipped``.
    """
    result = await workflow.transition_many(
        db,
        get_kind(kind),
        actor,
        payload.ids,
        payload.action,
        reason=payload.reason,
        note=payload.note,
        dispatcher=dispatcher,
    )
    return _bulk_response(result)
