"""Deadline engine entry point."""

import asyncio
import contextlib
import logging
import signal

import httpx

from deadlines.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


class DeadlineService:
    """Wires the store, reactor, scheduler, queue consumer and webhook server."""

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        from deadlines.expiration.consumer import ExpirationQueueConsumer
        from deadlines.expiration.detector import ExpirationDetector
        from deadlines.expiration.queue import RedisExpirationQueue
        from deadlines.notifications import (
            HttpIdentityProvider,
            HttpNotificationTopic,
            NotificationDispatcher,
            ReminderSender,
        )
        from deadlines.scheduling.engine import SchedulerEngine
        from deadlines.scheduling.reactor import TaskChangeReactor
        from deadlines.scheduling.schedules import ScheduleStore
        from deadlines.tasks.store import TaskStore
        from deadlines.webhooks.server import WebhookServer

        self.http = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self.store = TaskStore()
        self.engine = SchedulerEngine()
        self.schedules = ScheduleStore(self.engine.scheduler)
        self.reactor = TaskChangeReactor(self.schedules)
        self.store.subscribe(self.reactor.handle_records)

        topic = HttpNotificationTopic(self.http)
        identity = HttpIdentityProvider(self.http)
        if not topic.configured:
            logger.warning("NOTIFICATION_API_URL empty; notifications disabled")
        if not identity.configured:
            logger.warning("IDENTITY_API_URL or USER_POOL_ID empty; owner lookups disabled")
        self.dispatcher = NotificationDispatcher(
            topic,
            identity if identity.configured else None,
            topic_name=settings.expiration_topic if topic.configured else "",
        )
        self.reminders = ReminderSender(
            self.store,
            topic,
            identity if identity.configured else None,
            topic_name=settings.get_reminder_topic() if topic.configured else "",
        )

        self.queue = RedisExpirationQueue() if settings.redis_url else None
        if self.queue is None:
            logger.warning("REDIS_URL empty; expired tasks are notified directly")
        self.detector = ExpirationDetector(self.store, self.dispatcher, self.queue)
        self.consumer = (
            ExpirationQueueConsumer(self.queue, self.dispatcher) if self.queue else None
        )
        self.webhooks = WebhookServer()
        self._consumer_task: asyncio.Task | None = None

    async def start(self, stop_event: asyncio.Event) -> None:
        from deadlines.scheduling.callbacks import init_callbacks

        init_callbacks(self.detector, self.reminders, self.reactor)
        await self.engine.start()
        if self.consumer is not None:
            self._consumer_task = asyncio.create_task(self.consumer.run(stop_event))
        await self.webhooks.start()

    async def stop(self) -> None:
        from deadlines.scheduling.callbacks import reset_callbacks

        await self.webhooks.stop()
        if self._consumer_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer_task
        await self.engine.stop()
        if self.queue is not None:
            await self.queue.close()
        await self.http.aclose()
        reset_callbacks()


async def run(stop_event: asyncio.Event | None = None) -> None:
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    service = DeadlineService()
    await service.start(stop_event)
    logger.info("Deadline engine running (tz=%s)", settings.deadline_timezone)
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down deadline engine...")
        await service.stop()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
