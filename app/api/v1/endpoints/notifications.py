"""Business notification endpoints."""

import logging
from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from app.core.database import get_db
from app.models.notification import Notification
from app.schemas.notification import NotificationOut, NotificationUnreadCount
from app.services.notification_service import list_notifications, mark_read

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=list[NotificationOut])
async def get_notifications(
    business_id: UUID = Query(...),
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """List a business's notifications, newest first."""
    return await list_notifications(db, business_id, unread_only=unread_only, limit=limit)


@router.get("/unread-count", response_model=NotificationUnreadCount)
async def get_unread_count(business_id: UUID = Query(...), db: AsyncSession = Depends(get_db)):
    query = select(func.count(Notification.id)).where(
        Notification.business_id == business_id,
        Notification.is_read.is_(False),
    )
    result = await db.execute(query)
    return NotificationUnreadCount(count=result.scalar_one())


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_notification_read(
    notification_id: UUID,
    business_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db),
):
    notification = await mark_read(db, business_id, notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification
