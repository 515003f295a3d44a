"""
Notification Schemas for API Responses
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationResponse(BaseModel):
    """Schema for notification response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    order_id: Optional[int] = None
    type: str = Field(..., description="ORDER_FILLED, ORDER_EXPIRED, ORDER_CANCELLED, ORDER_NEEDS_REVIEW")
    title: str
    message: str
    data: Optional[str] = None
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    """Schema for list of notifications."""
    unread_count: int
    notifications: list[NotificationResponse]
