"""Drains the expiration queue and hands each task to the NotificationDispatcher."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from deadlines.results import BatchReport, Outcome, classify_error
from deadlines.tasks.models import Task

if TYPE_CHECKING:
    from deadlines.expiration.queue import ExpirationQueue, QueueMessage
    from deadlines.notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

_RECEIVE_BACKOFF_SECONDS = 5.0


class ExpirationQueueConsumer:
    """Processes queued expiration notices.

    A message is acknowledged only after it parsed and its notification
    cycle ran. Messages that fail stay pending on the queue and are
    redelivered after the visibility timeout, up to the queue's maximum
    receive count.
    """

    def __init__(
        self,
        queue: ExpirationQueue,
        dispatcher: NotificationDispatcher,
        *,
        batch_size: int = 10,
        block_ms: int = 1000,
    ) -> None:
        self._queue = queue
        self._dispatcher = dispatcher
        self._batch_size = batch_size
        self._block_ms = block_ms

    async def handle_messages(self, messages: list[QueueMessage]) -> BatchReport:
        report = BatchReport()
        for message in messages:
            try:
                task = Task.from_json(message.body)
                await self._dispatcher.notify_expired(task)
                await self._queue.ack(message)
            except Exception as exc:
                outcome = classify_error(exc)
                logger.exception(
                    "Error processing expiration message %s (%s)", message.message_id, outcome
                )
                report.record(outcome, f"Message {message.message_id}: {exc}")
                continue
            report.record(Outcome.SUCCESS)

        logger.info(report.message)
        return report

    async def poll_once(self) -> BatchReport | None:
        """Receive one batch and process it. Returns None if the receive failed."""
        try:
            messages = await self._queue.receive(self._batch_size, self._block_ms)
        except Exception:
            logger.exception("Failed to receive from the expiration queue")
            return None
        if not messages:
            return BatchReport()
        return await self.handle_messages(messages)

    async def run(self, stop_event: asyncio.Event) -> None:
        logger.info("Expiration queue consumer started")
        while not stop_event.is_set():
            report = await self.poll_once()
            if report is None:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=_RECEIVE_BACKOFF_SECONDS)
                except TimeoutError:
                    pass
        logger.info("Expiration queue consumer stopped")
