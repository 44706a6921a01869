"""Notification schemas."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class NotificationType(str, Enum):
    """Kinds of notification produced from appointment lifecycle events."""

    APPOINTMENT_CONFIRMATION = "appointment_confirmation"
    APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
    APPOINTMENT_CANCELLED = "appointment_cancelled"


class NotificationHistoryItem(BaseModel):
    """Schema for a single notification in history."""

    id: UUID
    user_id: UUID
    appointment_id: UUID | None = None
    notification_type: NotificationType
    title: str
    body: str
    data: dict[str, Any] | None = None
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationHistoryResponse(BaseModel):
    """Schema for notification history response."""

    notifications: list[NotificationHistoryItem]
    total: int
    page: int
    page_size: int
