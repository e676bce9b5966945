"""Notification service for business-facing alerts raised by sequences."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


async def create_notification(
    db: AsyncSession,
    business_id: UUID,
    title: str,
    message: str,
    notification_type: NotificationType,
    lead_id: Optional[UUID] = None,
) -> Notification:
    """Stage a notification for a business. The caller commits.

    Notifications are written in the same transaction as the sequence step
    that raised them.
    """
    notification = Notification(
        business_id=business_id,
        lead_id=lead_id,
        title=title,
        message=message,
        type=notification_type,
        is_read=False,
    )
    db.add(notification)

    logger.info(
        "Created notification for business %s: %s (%s)",
        business_id,
        title,
        notification_type.value,
    )
    return notification


async def list_notifications(
    db: AsyncSession,
    business_id: UUID,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    query = select(Notification).where(Notification.business_id == business_id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    result = await db.execute(query.order_by(Notification.created_at.desc()).limit(limit))
    return list(result.scalars().all())


async def mark_read(db: AsyncSession, business_id: UUID, notification_id: UUID) -> Optional[Notification]:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.business_id == business_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification:
        notification.is_read = True
        await db.commit()
        await db.refresh(notification)
    return notification
