"""Approvals service routers package."""

from services.approvals_service.routers.learner import router as learner_router
from services.approvals_service.routers.review import router as review_router

__all__ = ["learner_router", "review_router"]
