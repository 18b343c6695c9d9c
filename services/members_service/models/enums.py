"""Enum definitions for members service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class AccountStatus(str, enum.Enum):
    ACTIVE = "active"
    FROZEN = "frozen"
    DELETED = "deleted"


class StudentStatus(str, enum.Enum):
    """Aggregate learning status shown on a learner's profile."""

    NORMAL = "普通学员"
    LEARNING = "学习中"
    PASSED = "考核通过"
    DONOR = "捐赠学员"
    PASSED_DONOR = "考核通过+捐赠学员"
