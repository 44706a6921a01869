"""In-process outbound queue for appointment lifecycle events.

Publishing never blocks and never raises into the caller: each subscriber owns
a bounded queue drained by its own worker task, so a slow or failing consumer
cannot hold up the request that produced the event or the other consumers.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog

from vetclinic.config import settings
from vetclinic.events.schemas import LifecycleEvent

logger = structlog.get_logger(__name__)

EventHandler = Callable[[LifecycleEvent], Awaitable[None]]


@dataclass
class _Subscription:
    name: str
    handler: EventHandler
    queue: asyncio.Queue
    task: asyncio.Task | None = field(default=None)


class EventBus:
    """Fan-out event queue with one consumer task per subscriber."""

    def __init__(self, maxsize: int = 1000):
        """Initialize bus; each subscriber queue holds at most ``maxsize`` events."""
        self.maxsize = maxsize
        self._subscriptions: list[_Subscription] = []
        self._running = False

    @property
    def running(self) -> bool:
        """Whether consumer tasks are active."""
        return self._running

    def subscribe(self, name: str, handler: EventHandler) -> None:
        """
        Register a consumer.

        Args:
            name: Consumer name used in logs
            handler: Coroutine function receiving each event
        """
        subscription = _Subscription(
            name=name,
            handler=handler,
            queue=asyncio.Queue(maxsize=self.maxsize),
        )
        self._subscriptions.append(subscription)
        if self._running:
            subscription.task = asyncio.create_task(self._consume(subscription))

    def publish(self, event: LifecycleEvent) -> int:
        """
        Enqueue an event for every subscriber without waiting.

        Args:
            event: Lifecycle event

        Returns:
            Number of subscribers the event was queued for
        """
        delivered = 0
        for subscription in self._subscriptions:
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "event_dropped_queue_full",
                    consumer=subscription.name,
                    event_type=event.event_type,
                    appointment_id=str(event.appointment_id),
                )
        return delivered

    async def start(self) -> None:
        """Start one worker task per subscriber."""
        if self._running:
            return
        self._running = True
        for subscription in self._subscriptions:
            subscription.task = asyncio.create_task(self._consume(subscription))
        logger.info("event_bus_started", consumers=[s.name for s in self._subscriptions])

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        for subscription in self._subscriptions:
            await subscription.queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Drain pending events, then cancel the workers.

        Args:
            timeout: Seconds to wait for the queues to drain
        """
        if not self._running:
            return

        try:
            await asyncio.wait_for(self.join(), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "event_bus_drain_timeout",
                pending={s.name: s.queue.qsize() for s in self._subscriptions},
            )

        for subscription in self._subscriptions:
            if subscription.task is not None:
                subscription.task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await subscription.task
                subscription.task = None

        self._running = False
        logger.info("event_bus_stopped")

    async def _consume(self, subscription: _Subscription) -> None:
        while True:
            event = await subscription.queue.get()
            try:
                await subscription.handler(event)
            except Exception as e:
                logger.error(
                    "event_consumer_failed",
                    consumer=subscription.name,
                    event_type=event.event_type,
                    appointment_id=str(event.appointment_id),
                    error=str(e),
                )
            finally:
                subscription.queue.task_done()


# Global event bus instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """
    Get or create the process-wide event bus.

    Returns:
        Event bus instance
    """
    global _event_bus

    if _event_bus is None:
        _event_bus = EventBus(maxsize=settings.event_queue_maxsize)

    return _event_bus


async def close_event_bus() -> None:
    """Stop and discard the process-wide event bus."""
    global _event_bus

    if _event_bus is not None:
        await _event_bus.stop()
        _event_bus = None
