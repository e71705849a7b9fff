"""Durable expiration queue backed by a Redis Stream and consumer group.

- send: XADD the JSON task body
- receive: XAUTOCLAIM entries idle past the visibility timeout, then
  XREADGROUP new ones
- ack: XACK once the message has been processed

Unacknowledged entries stay pending and are redelivered after the
visibility timeout. An entry delivered more than ``max_receive_count``
times is copied to the dead-letter stream and acknowledged.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import redis.asyncio as aioredis
from redis.exceptions import ResponseError

from deadlines.config import settings

if TYPE_CHECKING:
    from deadlines.tasks.models import Task

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QueueMessage:
    message_id: str
    body: str
    receive_count: int = 1


class ExpirationQueue(Protocol):
    async def send(self, task: Task) -> str:
        """Enqueue an expired task. Raises on failure. Returns the message id."""
        ...

    async def receive(self, max_messages: int = 10, block_ms: int = 1000) -> list[QueueMessage]:
        """Return up to *max_messages* messages, waiting up to *block_ms* for new ones."""
        ...

    async def ack(self, message: QueueMessage) -> None:
        """Remove a processed message from the queue."""
        ...


class RedisExpirationQueue:
    """ExpirationQueue over Redis Streams.

    Pass *client* to reuse an existing ``redis.asyncio`` client (tests
    inject a fake here); otherwise one is built from *url*.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        stream: str | None = None,
        group: str | None = None,
        consumer: str | None = None,
        visibility_timeout_seconds: int | None = None,
        max_receive_count: int | None = None,
        client: Any | None = None,
    ) -> None:
        if client is not None:
            self._redis = client
        else:
            # decode_responses=True returns str everywhere for easier JSON handling
            self._redis = aioredis.from_url(url or settings.redis_url, decode_responses=True)
        self._stream = stream or settings.expiration_queue_stream
        self._group = group or settings.expiration_queue_group
        self._consumer = consumer or f"consumer-{uuid.uuid4().hex[:12]}"
        timeout = (
            settings.queue_visibility_timeout_seconds
            if visibility_timeout_seconds is None
            else visibility_timeout_seconds
        )
        self._visibility_ms = timeout * 1000
        self._max_receive_count = (
            settings.queue_max_receive_count if max_receive_count is None else max_receive_count
        )
        self._group_ready = False

    @property
    def dead_letter_stream(self) -> str:
        return f"{self._stream}:dead-letter"

    async def send(self, task: Task) -> str:
        entry_id = await self._redis.xadd(
            self._stream, {"taskId": task.task_id, "body": task.to_json()}
        )
        logger.info("Queued expiration notice for task %s (%s)", task.task_id, entry_id)
        return str(entry_id)

    async def receive(self, max_messages: int = 10, block_ms: int = 1000) -> list[QueueMessage]:
        await self._ensure_group()
        messages = await self._reclaim(max_messages)
        remaining = max_messages - len(messages)
        if remaining <= 0:
            return messages

        resp = await self._redis.xreadgroup(
            groupname=self._group,
            consumername=self._consumer,
            streams={self._stream: ">"},
            count=remaining,
            block=block_ms,
        )
        # resp shape: [(stream, [(entry_id, {field: value, ...}), ...])]
        for _, items in resp or []:
            for entry_id, data in items:
                messages.append(QueueMessage(str(entry_id), (data or {}).get("body", "")))
        return messages

    async def ack(self, message: QueueMessage) -> None:
        await self._redis.xack(self._stream, self._group, message.message_id)

    async def close(self) -> None:
        await self._redis.aclose()

    # -- Internal --------------------------------------------------------------

    async def _ensure_group(self) -> None:
        if self._group_ready:
            return
        try:
            # Create group at "0" so entries queued before the first consumer are delivered
            await self._redis.xgroup_create(self._stream, self._group, id="0", mkstream=True)
        except ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise
        self._group_ready = True

    async def _reclaim(self, count: int) -> list[QueueMessage]:
        """Claim entries whose previous consumer never acknowledged them."""
        resp = await self._redis.xautoclaim(
            self._stream,
            self._group,
            self._consumer,
            min_idle_time=self._visibility_ms,
            start_id="0-0",
            count=count,
        )
        claimed = resp[1] if resp and len(resp) > 1 else []
        messages: list[QueueMessage] = []
        for entry_id, data in claimed:
            if not data:
                continue
            receive_count = await self._receive_count(entry_id)
            if receive_count > self._max_receive_count:
                await self._dead_letter(entry_id, data, receive_count)
                continue
            messages.append(QueueMessage(str(entry_id), data.get("body", ""), receive_count))
        return messages

    async def _receive_count(self, entry_id: str) -> int:
        pending = await self._redis.xpending_range(
            self._stream, self._group, min=entry_id, max=entry_id, count=1
        )
        if not pending:
            return 1
        return int(pending[0].get("times_delivered", 1))

    async def _dead_letter(self, entry_id: str, data: dict[str, str], receive_count: int) -> None:
        await self._redis.xadd(
            self.dead_letter_stream,
            {**data, "sourceId": str(entry_id), "receiveCount": str(receive_count)},
        )
        await self._redis.xack(self._stream, self._group, entry_id)
        logger.warning(
            "Moved expiration message %s (taskId=%s) to %s after %d deliveries",
            entry_id,
            data.get("taskId", "unknown"),
            self.dead_letter_stream,
            receive_count,
        )
