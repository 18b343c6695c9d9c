"""Notification dispatcher.

Inserts run in their own transaction, after the state change that caused
them has committed. A failed insert never rolls back that state change; it
surfaces as ``NotificationDispatchError`` so the caller can report a partial
failure.
"""

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Depends
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.communications_service.models import Notification
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class NotificationDispatchError(Exception):
    """Notification rows could not be written."""


@dataclass(frozen=True)
class OutgoingNotification:
    to_user_id: uuid.UUID
    from_user_id: Optional[uuid.UUID]
    title: str
    content: str


class NotificationDispatcher:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify(
        self,
        to_user_ids: Iterable[uuid.UUID],
        from_user_id: Optional[uuid.UUID],
        title: str,
        content: str,
    ) -> int:
        """Send the same message to every recipient, once each."""
        return await self.send(
            OutgoingNotification(
                to_user_id=to_user_id,
                from_user_id=from_user_id,
                title=title,
                content=content,
            )
            for to_user_id in dict.fromkeys(to_user_ids)
            if to_user_id is not None
        )

    async def send(self, messages: Iterable[OutgoingNotification]) -> int:
        """Insert ``messages`` in one transaction; duplicates are dropped."""
        unique = list(dict.fromkeys(messages))
        if not unique:
            return 0

        try:
            self.db.add_all(
                Notification(
                    to_user_id=m.to_user_id,
                    from_user_id=m.from_user_id,
                    title=m.title,
                    content=m.content,
                )
                for m in unique
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error(
                "Failed to write %d notification(s): %s", len(unique), exc
            )
            raise NotificationDispatchError(str(exc)) from exc

        return len(unique)


async def get_dispatcher(
    db: AsyncSession = Depends(get_async_db),
) -> NotificationDispatcher:
    return NotificationDispatcher(db)
