"""Enum definitions for approvals service models."""

import enum
from typing import Optional


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class ResourceKind(str, enum.Enum):
    COURSE_ACCESS = "course_access"
    FILE_ACCESS_REQUESTS = "file_access_requests"
    TRADE_SUBMISSIONS = "trade_submissions"
    CLASSIC_TRADES = "classic_trades"
    WEEKLY_SUMMARIES = "weekly_summaries"
    COURSE_NOTES = "course_notes"
    LADDER_AUTHORIZATIONS = "ladder_authorizations"


class ApprovalStatus(str, enum.Enum):
    # Course notes saved but never submitted.
    DRAFT = "draft"
    REQUESTED = "requested"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVIEWED = "reviewed"
    COMPLETED = "completed"


class ReviewAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REVIEW = "review"


ACTION_RESULT = {
    ReviewAction.APPROVE: ApprovalStatus.APPROVED,
    ReviewAction.REJECT: ApprovalStatus.REJECTED,
    ReviewAction.REVIEW: ApprovalStatus.REVIEWED,
}


class TradeSubmissionType(str, enum.Enum):
    TRADE_LOG = "trade_log"
    TRADE_STRATEGY = "trade_strategy"


class RejectionReason(str, enum.Enum):
    INCOMPLETE_MATERIALS = "资料不完整"
    NOT_ELIGIBLE = "不符合要求"
    QUOTA_FULL = "名额已满"
    DUPLICATE = "重复申请"
    OTHER = "其他"


_REASON_ALIASES = {
    "incomplete_materials": RejectionReason.INCOMPLETE_MATERIALS,
    "not_eligible": RejectionReason.NOT_ELIGIBLE,
    "quota_full": RejectionReason.QUOTA_FULL,
    "duplicate": RejectionReason.DUPLICATE,
    "other": RejectionReason.OTHER,
}


def normalize_rejection_reason(raw: Optional[str]) -> RejectionReason:
    """Collapse free text onto the closed reason list; unknown text is ``OTHER``."""
    if not isinstance(raw, str):
        return RejectionReason.OTHER
    value = raw.strip()
    for reason in RejectionReason:
        if value == reason.value:
            return reason
    return _REASON_ALIASES.get(value.lower(), RejectionReason.OTHER)
