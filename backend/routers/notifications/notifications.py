from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from config import get_db
from models import Notification, UserProfile, utc_now
from routers.auth.auth import get_current_user
from dependencies.rbac import (
    require_notifications_read, require_notifications_write, require_notifications_delete
)
from utils.response_helpers import notification_to_dict, user_summary, safe_model_validate
from .schemas import (
    NotificationResponse, NotificationListResponse, UnreadCountResponse,
    MarkAllReadResponse, NotificationActionResponse
)
from typing import Optional
import uuid
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


async def get_own_notification(
    db: AsyncSession,
    notification_id: uuid.UUID,
    profile_id: Optional[uuid.UUID]
) -> Notification:
    notification = await db.get(Notification, notification_id)
    if not notification:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found"
        )
    if notification.user_id != profile_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized"
        )
    return notification


@router.get("/", response_model=NotificationListResponse)
async def get_notifications(
    limit: int = Query(50, ge=1, le=200),
    only_unread: bool = Query(False),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_notifications_read)
):
    """
    Get the caller's notifications, newest first
    """
    profile_id = current_user["profile_id"]
    if not profile_id:
        return NotificationListResponse(notifications=[], total=0)

    try:
        query = select(Notification).where(Notification.user_id == profile_id)
        if only_unread:
            query = query.where(Notification.is_read.is_(False))

        result = await db.execute(query.order_by(Notification.created_at.desc()).limit(limit))
        notifications = result.scalars().all()

        items = []
        for notification in notifications:
            notification_data = notification_to_dict(notification)
            sender = await db.get(UserProfile, notification.sender_id) if notification.sender_id else None
            notification_data["sender"] = user_summary(sender, "image_url", "shop_name")
            items.append(safe_model_validate(NotificationResponse, notification_data))

        return NotificationListResponse(notifications=items, total=len(items))

    except Exception as e:
        logger.error(f"Error getting notifications: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve notifications"
        )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_notifications_read)
):
    profile_id = current_user["profile_id"]
    if not profile_id:
        return UnreadCountResponse(unread_count=0)

    try:
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == profile_id,
                Notification.is_read.is_(False)
            )
        )
        return UnreadCountResponse(unread_count=result.scalar() or 0)

    except Exception as e:
        logger.error(f"Error counting notifications: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to count notifications"
        )


@router.put("/read-all", response_model=MarkAllReadResponse)
async def mark_all_as_read(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_notifications_write)
):
    profile_id = current_user["profile_id"]
    if not profile_id:
        return MarkAllReadResponse(marked_count=0)

    try:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == profile_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return MarkAllReadResponse(marked_count=result.rowcount or 0)

    except Exception as e:
        logger.error(f"Error marking notifications read: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to mark notifications as read"
        )


@router.put("/{notification_id}/read", response_model=NotificationActionResponse)
async def mark_as_read(
    notification_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_notifications_write)
):
    try:
        notification = await get_own_notification(db, notification_id, current_user["profile_id"])
        notification.is_read = True
        notification.read_at = utc_now()
        await db.commit()
        return NotificationActionResponse()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error marking notification {notification_id} read: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update notification"
        )


@router.delete("/{notification_id}", response_model=NotificationActionResponse)
async def delete_notification(
    notification_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_notifications_delete)
):
    try:
        notification = await get_own_notification(db, notification_id, current_user["profile_id"])
        await db.delete(notification)
        await db.commit()
        logger.info(f"Notification {notification_id} deleted")
        return NotificationActionResponse()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting notification {notification_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete notification"
        )
