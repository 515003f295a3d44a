"""
Notification API Endpoints
"""
from fastapi import APIRouter, Depends, HTTPException, Query

from limit_engine.core.container import Container
from limit_engine.core.deps import current_user_id, get_container
from limit_engine.schemas.notifications import NotificationListResponse, NotificationResponse

router = APIRouter()


@router.get("/", response_model=NotificationListResponse)
def get_notifications(
    unread_only: bool = Query(False, description="Only return unread notifications"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Maximum number of records"),
    user_id: int = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    """
    Get notifications for the calling user, newest first.

    - **unread_only**: Filter for unread notifications only
    - **skip**: Pagination offset
    - **limit**: Maximum results per page
    """
    service = container.notifier
    notifications = service.get_user_notifications(
        user_id=user_id,
        unread_only=unread_only,
        skip=skip,
        limit=limit,
    )
    return NotificationListResponse(
        unread_count=service.get_unread_count(user_id),
        notifications=notifications,
    )


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_as_read(
    notification_id: int,
    user_id: int = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    notification = container.notifier.mark_as_read(notification_id, user_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification
