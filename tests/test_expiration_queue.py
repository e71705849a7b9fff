"""Tests for RedisExpirationQueue against a mocked redis.asyncio client."""

import json
from datetime import datetime
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest
from redis.exceptions import ResponseError

from deadlines.expiration.queue import QueueMessage, RedisExpirationQueue
from deadlines.tasks.models import Task

UTC = ZoneInfo("UTC")
STREAM = "task-expirations"
GROUP = "expiration-notifier"


@pytest.fixture
def redis_client() -> AsyncMock:
    client = AsyncMock()
    client.xadd.return_value = "1717243200000-0"
    client.xautoclaim.return_value = ["0-0", [], []]
    client.xreadgroup.return_value = []
    client.xpending_range.return_value = []
    return client


@pytest.fixture
def queue(redis_client: AsyncMock) -> RedisExpirationQueue:
    return RedisExpirationQueue(
        stream=STREAM,
        group=GROUP,
        consumer="worker-1",
        visibility_timeout_seconds=300,
        max_receive_count=3,
        client=redis_client,
    )


def _task() -> Task:
    return Task(
        task_id="t1",
        name="Write report",
        deadline=datetime(2025, 6, 1, 17, 0, tzinfo=UTC),
        user_id="user-1",
    )


# -- send ----------------------------------------------------------------------


async def test_send_adds_json_body(queue: RedisExpirationQueue, redis_client: AsyncMock) -> None:
    entry_id = await queue.send(_task())

    assert entry_id == "1717243200000-0"
    stream, fields = redis_client.xadd.call_args.args
    assert stream == STREAM
    assert fields["taskId"] == "t1"
    assert json.loads(fields["body"])["taskId"] == "t1"
    assert Task.from_json(fields["body"]) == _task()


async def test_send_propagates_errors(queue: RedisExpirationQueue, redis_client: AsyncMock) -> None:
    redis_client.xadd.side_effect = ConnectionError("down")
    with pytest.raises(ConnectionError):
        await queue.send(_task())


# -- receive -------------------------------------------------------------------


async def test_receive_creates_group_once(
    queue: RedisExpirationQueue, redis_client: AsyncMock
) -> None:
    await queue.receive()
    await queue.receive()

    redis_client.xgroup_create.assert_awaited_once_with(STREAM, GROUP, id="0", mkstream=True)


async def test_receive_tolerates_existing_group(
    queue: RedisExpirationQueue, redis_client: AsyncMock
) -> None:
    redis_client.xgroup_create.side_effect = ResponseError(
        "BUSYGROUP Consumer Group name already exists"
    )

    assert await queue.receive() == []


async def test_receive_raises_other_group_errors(
    queue: RedisExpirationQueue, redis_client: AsyncMock
) -> None:
    redis_client.xgroup_create.side_effect = ResponseError("WRONGTYPE")

    with pytest.raises(ResponseError):
        await queue.receive()


async def test_receive_reads_new_messages(
    queue: RedisExpirationQueue, redis_client: AsyncMock
) -> None:
    redis_client.xreadgroup.return_value = [
        (STREAM, [("1-0", {"taskId": "t1", "body": '{"taskId": "t1"}'})]),
    ]

    messages = await queue.receive(max_messages=5, block_ms=250)

    assert messages == [QueueMessage("1-0", '{"taskId": "t1"}', 1)]
    kwargs = redis_client.xreadgroup.call_args.kwargs
    assert kwargs["groupname"] == GROUP
    assert kwargs["consumername"] == "worker-1"
    assert kwargs["streams"] == {STREAM: ">"}
    assert kwargs["count"] == 5
    assert kwargs["block"] == 250


async def test_receive_reclaims_stale_messages_first(
    queue: RedisExpirationQueue, redis_client: AsyncMock
) -> None:
    redis_client.xautoclaim.return_value = ["0-0", [("1-0", {"body": "{}"})], []]
    redis_client.xpending_range.return_value = [{"message_id": "1-0", "times_delivered": 2}]

    messages = await queue.receive(max_messages=1)

    assert messages == [QueueMessage("1-0", "{}", 2)]
    assert redis_client.xautoclaim.call_args.kwargs["min_idle_time"] == 300_000
    redis_client.xreadgroup.assert_not_called()


async def test_receive_dead_letters_after_max_deliveries(
    queue: RedisExpirationQueue, redis_client: AsyncMock
) -> None:
    redis_client.xautoclaim.return_value = [
        "0-0",
        [("1-0", {"taskId": "t1", "body": "{}"})],
        [],
    ]
    redis_client.xpending_range.return_value = [{"message_id": "1-0", "times_delivered": 4}]

    messages = await queue.receive()

    assert messages == []
    stream, fields = redis_client.xadd.call_args.args
    assert stream == f"{STREAM}:dead-letter"
    assert fields["sourceId"] == "1-0"
    assert fields["receiveCount"] == "4"
    redis_client.xack.assert_awaited_once_with(STREAM, GROUP, "1-0")


async def test_receive_ignores_deleted_entries(
    queue: RedisExpirationQueue, redis_client: AsyncMock
) -> None:
    redis_client.xautoclaim.return_value = ["0-0", [("1-0", None)], []]

    assert await queue.receive() == []


# -- ack -----------------------------------------------------------------------


async def test_ack(queue: RedisExpirationQueue, redis_client: AsyncMock) -> None:
    await queue.ack(QueueMessage("5-0", "{}"))
    redis_client.xack.assert_awaited_once_with(STREAM, GROUP, "5-0")


async def test_close(queue: RedisExpirationQueue, redis_client: AsyncMock) -> None:
    await queue.close()
    redis_client.aclose.assert_awaited_once()
