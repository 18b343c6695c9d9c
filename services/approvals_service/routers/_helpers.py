"""Shared response builders for approvals routers."""

from typing import Optional

from libs.common.error_handler import ErrorCode
from services.approvals_service.schemas import (
    ApprovalItemResponse,
    ItemListResponse,
    SubmitResponse,
)
from services.approvals_service.services.workflow import SubmitResult


def notify_warning(notified: bool) -> Optional[str]:
    return None if notified else ErrorCode.NOTIFY_FAILED.value


def submit_response(result: SubmitResult) -> SubmitResponse:
    return SubmitResponse(
        status=result.status,
        item=ApprovalItemResponse.model_validate(result.item),
        notified=result.notified,
        warning=notify_warning(result.notified),
    )


def list_response(items: list, total: int, page: int, page_size: int) -> ItemListResponse:
    return ItemListResponse(
        items=[ApprovalItemResponse.model_validate(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )
