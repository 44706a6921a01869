"""Consumers attached to the lifecycle event bus."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vetclinic.events.bus import EventBus
from vetclinic.events.schemas import LifecycleEvent
from vetclinic.services.notification_service import NotificationService

logger = structlog.get_logger(__name__)


class NotificationConsumer:
    """Records a client notification for each event, in its own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize with the factory used to open a session per event."""
        self.session_factory = session_factory

    async def __call__(self, event: LifecycleEvent) -> None:
        async with self.session_factory() as session:
            try:
                await NotificationService.record_appointment_notification(session, event)
            except Exception:
                await session.rollback()
                raise


class AuditLogConsumer:
    """Writes one structured log line per lifecycle event."""

    async def __call__(self, event: LifecycleEvent) -> None:
        logger.info("appointment_lifecycle_event", **event.model_dump(mode="json"))


def register_default_consumers(
    bus: EventBus,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Attach the notification and audit consumers to a bus."""
    bus.subscribe("notifications", NotificationConsumer(session_factory))
    bus.subscribe("audit_log", AuditLogConsumer())
