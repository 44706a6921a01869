"""Notification endpoints."""

from fastapi import APIRouter, Query

from vetclinic.dependencies import CurrentUser, DatabaseSession
from vetclinic.schemas.notifications import (
    NotificationHistoryItem,
    NotificationHistoryResponse,
    NotificationType,
)
from vetclinic.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get(
    "/me",
    response_model=NotificationHistoryResponse,
    summary="Get current user's notifications",
)
async def get_my_notifications(
    current_user: CurrentUser,
    db: DatabaseSession,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    notification_type: NotificationType | None = Query(None, description="Filter by type"),
) -> NotificationHistoryResponse:
    """
    Get the appointment notifications recorded for the authenticated user.

    Args:
        current_user: Authenticated user
        db: Database session
        page: Page number (starts at 1)
        page_size: Number of items per page (max 100)
        notification_type: Optional type filter

    Returns:
        Paginated notification history, newest first
    """
    result = await NotificationService.get_user_notifications(
        db=db,
        user_id=current_user.id,
        page=page,
        page_size=page_size,
        notification_type_filter=notification_type.value if notification_type else None,
    )

    return NotificationHistoryResponse(
        notifications=[NotificationHistoryItem.model_validate(n) for n in result["notifications"]],
        total=result["total"],
        page=result["page"],
        page_size=result["page_size"],
    )
