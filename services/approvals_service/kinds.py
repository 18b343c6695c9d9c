"""Per-kind configuration for the generic approval workflow.

Each resource kind is one ``KindDescriptor``: which table it lives in, its
pending status, which review actions apply, who may review it, where a
learner may resubmit from, and a handful of flags. ``services/workflow.py``
is written once against this table.
"""

from dataclasses import dataclass

from libs.auth.roles import MANAGER_ROLES, SystemRole
from libs.common.error_handler import ApiError, ErrorCode
from services.approvals_service.models import (
    ApprovalStatus,
    ClassicTrade,
    CourseAccess,
    CourseNote,
    FileAccessRequest,
    LadderAuthorization,
    ResourceKind,
    ReviewAction,
    TradeSubmission,
    WeeklySummary,
)

# Reviewers for kinds coaches do not handle.
ORG_REVIEWERS = frozenset(
    {SystemRole.SUPER_ADMIN, SystemRole.LEADER, SystemRole.ASSISTANT}
)


@dataclass(frozen=True)
class KindDescriptor:
    kind: ResourceKind
    model: type
    pending_status: ApprovalStatus
    actions: frozenset
    reviewer_roles: frozenset
    resubmit_from: frozenset
    # Columns besides ``user_id`` that identify one item; empty means every
    # submission creates a new row.
    key_columns: tuple = ()
    # Timestamp column stamped on (re)submission.
    stamp_column: str = "submitted_at"
    # Payload may be replaced while the item is still pending.
    editable_while_pending: bool = False
    archivable: bool = False
    sequential: bool = False
    deletable_by_manager: bool = False
    deletable_by_owner: bool = False
    # At most one row per learner, found by ``user_id`` alone.
    one_per_user: bool = False

    @property
    def keyed(self) -> bool:
        return bool(self.key_columns) or self.one_per_user

    def allows(self, action: ReviewAction) -> bool:
        return action in self.actions


KINDS: dict[ResourceKind, KindDescriptor] = {
    ResourceKind.COURSE_ACCESS: KindDescriptor(
        kind=ResourceKind.COURSE_ACCESS,
        model=CourseAccess,
        pending_status=ApprovalStatus.REQUESTED,
        actions=frozenset({ReviewAction.APPROVE, ReviewAction.REJECT}),
        reviewer_roles=ORG_REVIEWERS,
        resubmit_from=frozenset({ApprovalStatus.REJECTED}),
        key_columns=("course_id",),
        stamp_column="requested_at",
        sequential=True,
    ),
    ResourceKind.FILE_ACCESS_REQUESTS: KindDescriptor(
        kind=ResourceKind.FILE_ACCESS_REQUESTS,
        model=FileAccessRequest,
        pending_status=ApprovalStatus.REQUESTED,
        actions=frozenset({ReviewAction.APPROVE, ReviewAction.REJECT}),
        reviewer_roles=ORG_REVIEWERS,
        resubmit_from=frozenset({ApprovalStatus.REJECTED}),
        key_columns=("file_id",),
        stamp_column="requested_at",
    ),
    ResourceKind.TRADE_SUBMISSIONS: KindDescriptor(
        kind=ResourceKind.TRADE_SUBMISSIONS,
        model=TradeSubmission,
        pending_status=ApprovalStatus.SUBMITTED,
        actions=frozenset({ReviewAction.APPROVE, ReviewAction.REJECT}),
        reviewer_roles=MANAGER_ROLES,
        resubmit_from=frozenset({ApprovalStatus.REJECTED}),
        archivable=True,
        deletable_by_manager=True,
    ),
    ResourceKind.CLASSIC_TRADES: KindDescriptor(
        kind=ResourceKind.CLASSIC_TRADES,
        model=ClassicTrade,
        pending_status=ApprovalStatus.SUBMITTED,
        actions=frozenset({ReviewAction.REVIEW}),
        reviewer_roles=ORG_REVIEWERS,
        resubmit_from=frozenset(),
        editable_while_pending=True,
        deletable_by_owner=True,
    ),
    ResourceKind.WEEKLY_SUMMARIES: KindDescriptor(
        kind=ResourceKind.WEEKLY_SUMMARIES,
        model=WeeklySummary,
        pending_status=ApprovalStatus.SUBMITTED,
        actions=frozenset({ReviewAction.REVIEW}),
        reviewer_roles=MANAGER_ROLES,
        resubmit_from=frozenset({ApprovalStatus.REVIEWED}),
        key_columns=("week_start",),
        editable_while_pending=True,
    ),
    ResourceKind.COURSE_NOTES: KindDescriptor(
        kind=ResourceKind.COURSE_NOTES,
        model=CourseNote,
        pending_status=ApprovalStatus.SUBMITTED,
        actions=frozenset({ReviewAction.REVIEW}),
        reviewer_roles=ORG_REVIEWERS,
        resubmit_from=frozenset({ApprovalStatus.DRAFT, ApprovalStatus.REVIEWED}),
        key_columns=("course_id",),
        editable_while_pending=True,
    ),
    ResourceKind.LADDER_AUTHORIZATIONS: KindDescriptor(
        kind=ResourceKind.LADDER_AUTHORIZATIONS,
        model=LadderAuthorization,
        pending_status=ApprovalStatus.REQUESTED,
        actions=frozenset({ReviewAction.APPROVE, ReviewAction.REJECT}),
        reviewer_roles=ORG_REVIEWERS,
        resubmit_from=frozenset({ApprovalStatus.REJECTED}),
        stamp_column="requested_at",
        one_per_user=True,
    ),
}


def get_kind(kind: str) -> KindDescriptor:
    """Look up a descriptor by its path name; unknown kinds are ``NOT_FOUND``."""
    try:
        return KINDS[ResourceKind(kind)]
    except ValueError:
        raise ApiError(ErrorCode.NOT_FOUND)
