"""Members Service models package.

Re-exports all models and enums so that:
  - ``from services.members_service.models import Profile`` works
  - Alembic env.py sees every table on import
"""

from services.members_service.models.enums import (  # noqa: F401
    AccountStatus,
    StudentStatus,
    enum_values,
)
from services.members_service.models.profile import (  # noqa: F401
    CoachAssignment,
    Profile,
)

__all__ = [
    "AccountStatus",
    "StudentStatus",
    "enum_values",
    "Profile",
    "CoachAssignment",
]
