"""Approvals Service models package.

Re-exports all models and enums so that:
  - ``from services.approvals_service.models import CourseAccess`` works
  - Alembic env.py sees every table on import
"""

from services.approvals_service.models.catalog import (  # noqa: F401
    Course,
    FilePermission,
    LibraryFile,
)
from services.approvals_service.models.enums import (  # noqa: F401
    ACTION_RESULT,
    ApprovalStatus,
    RejectionReason,
    ResourceKind,
    ReviewAction,
    TradeSubmissionType,
    enum_values,
    normalize_rejection_reason,
)
from services.approvals_service.models.resources import (  # noqa: F401
    ApprovableMixin,
    ClassicTrade,
    CourseAccess,
    CourseNote,
    FileAccessRequest,
    LadderAuthorization,
    TradeSubmission,
    WeeklySummary,
)

__all__ = [
    "ACTION_RESULT",
    "ApprovableMixin",
    "ApprovalStatus",
    "ClassicTrade",
    "Course",
    "CourseAccess",
    "CourseNote",
    "FileAccessRequest",
    "FilePermission",
    "LadderAuthorization",
    "LibraryFile",
    "RejectionReason",
    "ResourceKind",
    "ReviewAction",
    "TradeSubmission",
    "TradeSubmissionType",
    "WeeklySummary",
    "enum_values",
    "normalize_rejection_reason",
]
