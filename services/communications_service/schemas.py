import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    id: uuid.UUID
    to_user_id: uuid.UUID
    from_user_id: Optional[uuid.UUID] = None
    title: str
    content: str
    created_at: datetime
    read_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class NotificationListResponse(BaseModel):
    ok: bool = True
    items: list[NotificationResponse]
    total: int
    page: int
    page_size: int


class UnreadCountResponse(BaseModel):
    ok: bool = True
    unread: int


class MarkReadResponse(BaseModel):
    ok: bool = True
    updated: int
