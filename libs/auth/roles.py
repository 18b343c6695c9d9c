"""Closed role vocabulary for staff and learners.

Role strings stored on profiles have drifted over time (English, legacy
aliases, Chinese labels). Everything entering the system goes through
``normalize_role``; code downstream only ever compares ``SystemRole`` members.
"""

import enum
from typing import Optional


class SystemRole(str, enum.Enum):
    STUDENT = "student"
    TRADER = "trader"
    COACH = "coach"
    ASSISTANT = "assistant"
    LEADER = "leader"
    SUPER_ADMIN = "super_admin"


_ROLE_ALIASES: dict[str, SystemRole] = {
    "student": SystemRole.STUDENT,
    "trader": SystemRole.TRADER,
    "coach": SystemRole.COACH,
    "assistant": SystemRole.ASSISTANT,
    "leader": SystemRole.LEADER,
    "team_leader": SystemRole.LEADER,
    "teamleader": SystemRole.LEADER,
    "super_admin": SystemRole.SUPER_ADMIN,
    "superadmin": SystemRole.SUPER_ADMIN,
    "学员": SystemRole.STUDENT,
    "交易员": SystemRole.TRADER,
    "教练": SystemRole.COACH,
    "助教": SystemRole.ASSISTANT,
    "团队长": SystemRole.LEADER,
    "超管": SystemRole.SUPER_ADMIN,
}

# Leaders and super-admins administer the org tree.
ADMIN_ROLES = frozenset({SystemRole.LEADER, SystemRole.SUPER_ADMIN})

# Anyone who reviews learner submissions.
MANAGER_ROLES = frozenset(
    {
        SystemRole.LEADER,
        SystemRole.SUPER_ADMIN,
        SystemRole.COACH,
        SystemRole.ASSISTANT,
    }
)

# Anyone who may submit requests on their own behalf.
LEARNER_ROLES = frozenset(
    {
        SystemRole.STUDENT,
        SystemRole.TRADER,
        SystemRole.COACH,
        SystemRole.ASSISTANT,
        SystemRole.LEADER,
    }
)

# Roles a coach can be assigned to.
COACHABLE_ROLES = frozenset({SystemRole.STUDENT, SystemRole.TRADER})


def normalize_role(raw: object) -> Optional[SystemRole]:
    """Map a stored role string to ``SystemRole``; ``None`` when unknown."""
    if isinstance(raw, SystemRole):
        return raw
    if not isinstance(raw, str):
        return None
    value = raw.strip()
    if not value:
        return None
    return _ROLE_ALIASES.get(value) or _ROLE_ALIASES.get(value.lower())


def role_aliases(role: SystemRole) -> list[str]:
    """Every stored spelling that normalizes to ``role``."""
    return [alias for alias, target in _ROLE_ALIASES.items() if target is role]
