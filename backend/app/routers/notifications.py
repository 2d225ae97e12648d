from fastapi import APIRouter, Depends
from typing import List

from app.models.schemas import CurrentUser, Notification
from app.services.auth import get_current_user
from app.services.notifications import NotificationService, get_notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[Notification])
async def get_notifications(
    unread_only: bool = False,
    current_user: CurrentUser = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service)
):
    """Get the current user's notifications, newest first."""
    return notifications.list_notifications(current_user.id, unread_only=unread_only)


@router.post("/read-all")
async def mark_all_notifications_read(
    current_user: CurrentUser = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service)
):
    """Mark every unread notification as read."""
    return {"marked": notifications.mark_all_read(current_user.id)}


@router.post("/{notification_id}/read", response_model=Notification)
async def mark_notification_read(
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service)
):
    """Mark one of the current user's notifications as read."""
    return notifications.mark_notification_read(notification_id, current_user.id)
