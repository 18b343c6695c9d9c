"""Communications Service models package."""

from services.communications_service.models.notification import (  # noqa: F401
    Notification,
)

__all__ = ["Notification"]
