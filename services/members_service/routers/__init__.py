"""Members service routers package."""

from services.members_service.routers.coach_assignments import (
    router as coach_assignments_router,
)

__all__ = ["coach_assignments_router"]
