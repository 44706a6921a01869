"""Notification service turning appointment lifecycle events into client notifications."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import desc, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from vetclinic.core.timeutils import as_utc, utcnow
from vetclinic.events.schemas import (
    AppointmentCancelled,
    AppointmentCreated,
    AppointmentRescheduled,
    LifecycleEvent,
)
from vetclinic.models.notifications import notifications
from vetclinic.schemas.notifications import NotificationType

logger = structlog.get_logger(__name__)

TIME_FORMAT = "%b %d, %I:%M %p"


def _format_time(value: datetime) -> str:
    return as_utc(value).strftime(TIME_FORMAT)


def render_notification(event: LifecycleEvent) -> tuple[NotificationType, str, str]:
    """
    Build the notification type, title and body for a lifecycle event.

    Args:
        event: Lifecycle event

    Returns:
        Tuple of (notification_type, title, body)
    """
    greeting = f"Dear {event.client_name}," if event.client_name else "Hello,"
    patient = event.patient_name or "your pet"

    if isinstance(event, AppointmentCreated):
        body = (
            f"{greeting} the appointment for {patient} with {event.veterinarian_name} "
            f"is confirmed for {_format_time(event.scheduled_at)}. "
            "Please arrive 10 minutes early."
        )
        return NotificationType.APPOINTMENT_CONFIRMATION, "Appointment Scheduled", body

    if isinstance(event, AppointmentRescheduled):
        body = (
            f"{greeting} the appointment for {patient} with {event.veterinarian_name} "
            f"moved from {_format_time(event.previous_scheduled_at)} "
            f"to {_format_time(event.scheduled_at)}."
        )
        return NotificationType.APPOINTMENT_RESCHEDULED, "Appointment Rescheduled", body

    if isinstance(event, AppointmentCancelled):
        reason = event.cancellation_reason or "Not specified"
        body = (
            f"{greeting} the appointment for {patient} on "
            f"{_format_time(event.scheduled_at)} was cancelled. Reason: {reason}."
        )
        return NotificationType.APPOINTMENT_CANCELLED, "Appointment Cancelled", body

    raise ValueError(f"Unsupported event type: {type(event).__name__}")


class NotificationService:
    """Service for recording and reading client notifications."""

    @staticmethod
    async def record_appointment_notification(
        db: AsyncSession,
        event: LifecycleEvent,
    ) -> dict[str, Any] | None:
        """
        Persist the notification a client should receive for an event.

        Delivery (email, SMS, push) is handled by whatever channel reads the
        pending rows.

        Args:
            db: Database session
            event: Lifecycle event

        Returns:
            Created notification record, or None when the patient has no owner
        """
        if event.client_id is None:
            logger.info(
                "notification_skipped_no_client",
                event_type=event.event_type,
                appointment_id=str(event.appointment_id),
            )
            return None

        notification_type, title, body = render_notification(event)
        values = {
            "id": uuid4(),
            "user_id": event.client_id,
            "appointment_id": event.appointment_id,
            "notification_type": notification_type.value,
            "title": title,
            "body": body,
            "data": {
                "type": event.event_type,
                "appointment_id": str(event.appointment_id),
                "email": event.client_email,
                "phone": event.client_phone,
            },
            "status": "pending",
            "created_at": utcnow(),
        }

        await db.execute(insert(notifications).values(**values))
        await db.commit()

        logger.info(
            "notification_recorded",
            notification_type=notification_type.value,
            appointment_id=str(event.appointment_id),
            user_id=str(event.client_id),
        )
        return values

    @staticmethod
    async def get_user_notifications(
        db: AsyncSession,
        user_id: UUID,
        page: int = 1,
        page_size: int = 50,
        notification_type_filter: str | None = None,
    ) -> dict[str, Any]:
        """
        Get notification history for a user.

        Args:
            db: Database session
            user_id: User ID
            page: Page number (1-indexed)
            page_size: Number of items per page
            notification_type_filter: Filter by type (optional)

        Returns:
            Dictionary with notifications list and pagination info
        """
        query = select(notifications).where(notifications.c.user_id == user_id)

        if notification_type_filter:
            query = query.where(notifications.c.notification_type == notification_type_filter)

        count_query = select(func.count()).select_from(query.subquery())
        total_result = await db.execute(count_query)
        total = total_result.scalar_one()

        query = (
            query.order_by(desc(notifications.c.created_at))
            .limit(page_size)
            .offset((page - 1) * page_size)
        )

        result = await db.execute(query)
        notification_records = [dict(row._mapping) for row in result.fetchall()]

        return {
            "notifications": notification_records,
            "total": total,
            "page": page,
            "page_size": page_size,
        }
