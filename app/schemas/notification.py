"""Pydantic schemas for notifications."""

from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from app.models.notification import NotificationType


class NotificationOut(BaseModel):
    """Response schema for notification."""
    id: UUID
    business_id: UUID
    lead_id: UUID | None = None
    title: str
    message: str
    type: NotificationType
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationUnreadCount(BaseModel):
    """Response schema for unread notification count."""
    count: int
