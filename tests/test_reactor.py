"""Tests for TaskChangeReactor: schedule upkeep on task mutations."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock, call
from zoneinfo import ZoneInfo

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from deadlines.results import Outcome
from deadlines.scheduling.reactor import TaskChangeReactor
from deadlines.scheduling.schedules import SchedulePurpose, ScheduleStore
from deadlines.tasks.stream import StreamRecord

UTC = ZoneInfo("UTC")
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
F1 = "2025-06-03T17:00:00"
F2 = "2025-06-05T09:30:00"
TARGETS = {
    "Reminder": "deadlines.scheduling.callbacks:fire_reminder",
    "Expiration": "deadlines.scheduling.callbacks:fire_expiration",
}


@pytest.fixture
def schedules() -> MagicMock:
    mock = MagicMock(spec=ScheduleStore)
    mock.is_configured.return_value = True
    mock.create_schedule.return_value = True
    mock.delete_schedule.return_value = Outcome.SUCCESS
    return mock


@pytest.fixture
def reactor(schedules: MagicMock) -> TaskChangeReactor:
    return TaskChangeReactor(schedules, reminder_offset_minutes=60, clock=lambda: NOW)


def _image(**overrides) -> dict[str, str]:
    image = {
        "taskId": "t1",
        "name": "Write report",
        "description": "first draft",
        "status": "OPEN",
        "deadline": F1,
        "userId": "user-1",
    }
    image.update(overrides)
    return {k: v for k, v in image.items() if v is not None}


def _insert(**overrides) -> StreamRecord:
    return StreamRecord("INSERT", new_image=_image(**overrides))


def _modify(old: dict | None = None, **new) -> StreamRecord:
    return StreamRecord("MODIFY", new_image=_image(**new), old_image=_image(**(old or {})))


def _at(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=UTC)


# -- INSERT --------------------------------------------------------------------


async def test_insert_creates_reminder_and_expiration(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    report = await reactor.handle_records([_insert()])

    assert report.success
    assert report.processed == 1
    creates = schedules.create_schedule.call_args_list
    assert creates[0].args[:3] == (SchedulePurpose.REMINDER, "t1", _at(F1) - timedelta(hours=1))
    assert creates[1].args[:3] == (SchedulePurpose.EXPIRATION, "t1", _at(F1))
    assert creates[0].args[3]["taskId"] == "t1"


async def test_insert_deletes_before_creating(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    await reactor.handle_records([_insert()])

    names = [c[0] for c in schedules.method_calls if c[0] != "is_configured"]
    assert names == ["delete_schedule", "create_schedule", "delete_schedule", "create_schedule"]


async def test_insert_reminder_in_past_still_creates_expiration(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    # Deadline 30 minutes away: the reminder instant has already passed
    await reactor.handle_records([_insert(deadline="2025-06-01T12:30:00")])

    purposes = [c.args[0] for c in schedules.create_schedule.call_args_list]
    assert purposes == [SchedulePurpose.EXPIRATION]


async def test_insert_without_expiration_target(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    schedules.is_configured.side_effect = lambda purpose: purpose is SchedulePurpose.REMINDER

    await reactor.handle_records([_insert()])

    purposes = [c.args[0] for c in schedules.create_schedule.call_args_list]
    assert purposes == [SchedulePurpose.REMINDER]


async def test_insert_without_deadline_is_skipped(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    report = await reactor.handle_records([_insert(deadline=None)])

    assert report.outcomes == [Outcome.SKIPPED]
    schedules.create_schedule.assert_not_called()


async def test_insert_with_unparseable_deadline_is_skipped(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    report = await reactor.handle_records([_insert(deadline="soon")])

    assert report.outcomes == [Outcome.SKIPPED]
    schedules.create_schedule.assert_not_called()


async def test_insert_without_task_id_fails_record(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    record = StreamRecord("INSERT", new_image={"deadline": F1})

    report = await reactor.handle_records([record])

    assert report.outcomes == [Outcome.PERMANENT_FAILURE]
    assert not report.success


async def test_insert_replay_is_idempotent() -> None:
    scheduler = AsyncIOScheduler(timezone="UTC")
    store = ScheduleStore(scheduler, targets=TARGETS, executor="default", clock=lambda: NOW)
    reactor = TaskChangeReactor(store, reminder_offset_minutes=60, clock=lambda: NOW)

    await reactor.handle_records([_insert()])
    once = sorted((job.id, job.trigger.run_date) for job in scheduler.get_jobs())
    await reactor.handle_records([_insert()])
    twice = sorted((job.id, job.trigger.run_date) for job in scheduler.get_jobs())

    assert once == twice
    assert [job_id for job_id, _ in twice] == ["Expiration_t1", "Reminder_t1"]


# -- MODIFY --------------------------------------------------------------------


async def test_modify_description_only_makes_no_schedule_calls(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    report = await reactor.handle_records([_modify(description="second draft")])

    assert report.outcomes == [Outcome.SKIPPED]
    schedules.create_schedule.assert_not_called()
    schedules.delete_schedule.assert_not_called()


async def test_modify_deadline_change_deletes_then_creates(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    report = await reactor.handle_records([_modify(old={"deadline": F1}, deadline=F2)])

    assert report.success
    schedules.delete_schedule.assert_called_once_with(SchedulePurpose.REMINDER, "t1")
    schedules.create_schedule.assert_called_once()
    purpose, task_id, fire_at, _payload = schedules.create_schedule.call_args.args
    assert (purpose, task_id) == (SchedulePurpose.REMINDER, "t1")
    assert fire_at == _at(F2) - timedelta(minutes=60)
    order = [c[0] for c in schedules.method_calls]
    assert order.index("delete_schedule") < order.index("create_schedule")


async def test_modify_owner_change_reschedules(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    await reactor.handle_records([_modify(userId="user-2")])

    schedules.delete_schedule.assert_called_once()
    schedules.create_schedule.assert_called_once()


async def test_modify_owner_change_via_assignee_id(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    record = _modify(old={"userId": None, "assigneeId": "a1"}, userId=None, assigneeId="a2")

    await reactor.handle_records([record])

    schedules.create_schedule.assert_called_once()


@pytest.mark.parametrize("status", ["COMPLETED", "CLOSED", "EXPIRED", "completed"])
async def test_modify_to_inactive_status_deletes_reminder_only(
    reactor: TaskChangeReactor, schedules: MagicMock, status: str
) -> None:
    report = await reactor.handle_records([_modify(status=status)])

    assert report.outcomes == [Outcome.SUCCESS]
    schedules.delete_schedule.assert_called_once_with(SchedulePurpose.REMINDER, "t1")
    schedules.create_schedule.assert_not_called()


async def test_modify_without_deadline_deletes_reminder(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    report = await reactor.handle_records([_modify(deadline=None)])

    assert report.outcomes == [Outcome.SKIPPED]
    schedules.delete_schedule.assert_called_once_with(SchedulePurpose.REMINDER, "t1")
    schedules.create_schedule.assert_not_called()


async def test_modify_with_unparseable_deadline_takes_delete_path(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    report = await reactor.handle_records([_modify(deadline="not-a-date")])

    assert report.outcomes == [Outcome.SKIPPED]
    schedules.delete_schedule.assert_called_once()
    schedules.create_schedule.assert_not_called()


async def test_modify_reminder_in_past_drops_reminder(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    report = await reactor.handle_records([_modify(deadline="2025-06-01T12:30:00")])

    assert report.outcomes == [Outcome.SKIPPED]
    assert schedules.mock_calls[0] == call.delete_schedule(SchedulePurpose.REMINDER, "t1")
    schedules.create_schedule.assert_not_called()


async def test_modify_create_failure_is_reported(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    schedules.create_schedule.return_value = False

    report = await reactor.handle_records([_modify(deadline=F2)])

    assert report.outcomes == [Outcome.PERMANENT_FAILURE]


# -- Batches -------------------------------------------------------------------


async def test_other_events_are_ignored(reactor: TaskChangeReactor, schedules: MagicMock) -> None:
    report = await reactor.handle_records([StreamRecord("REMOVE", old_image=_image())])

    assert report.outcomes == [Outcome.SKIPPED]
    assert schedules.method_calls == []


async def test_bad_record_does_not_block_batch(
    reactor: TaskChangeReactor, schedules: MagicMock
) -> None:
    schedules.delete_schedule.side_effect = [RuntimeError("boom"), Outcome.SUCCESS]

    report = await reactor.handle_records(
        [_modify(deadline=F2), _modify(taskId="t2", deadline=F2)]
    )

    assert report.outcomes == [Outcome.PERMANENT_FAILURE, Outcome.SUCCESS]
    assert report.processed == 1
    assert "t1" in report.errors[0]
    schedules.create_schedule.assert_called_once()
