"""TaskChangeReactor: keeps reminder and expiration schedules in step with task mutations."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING

from deadlines.config import settings
from deadlines.results import BatchReport, Outcome
from deadlines.scheduling.schedules import SchedulePurpose
from deadlines.scheduling.timing import current_time, is_future, parse_timestamp, reminder_time
from deadlines.tasks.models import ACTIVE_STATUS
from deadlines.tasks.stream import EventName, StreamRecord

if TYPE_CHECKING:
    from datetime import datetime

    from deadlines.scheduling.schedules import ScheduleStore

logger = logging.getLogger(__name__)

_Result = tuple[Outcome, str | None]


def _owner(image: Mapping[str, str]) -> str | None:
    return image.get("userId") or image.get("assigneeId")


class TaskChangeReactor:
    """Consumes task mutation records and (re)creates or deletes schedules.

    Schedules are never mutated in place: a change is always a delete
    followed by a create, which also makes replayed records harmless.

    Args:
        schedules: ScheduleStore that owns the reminder/expiration jobs.
        reminder_offset_minutes: How long before the deadline the reminder
            fires (default from settings).
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        schedules: ScheduleStore,
        reminder_offset_minutes: int | None = None,
        clock: Callable[[], datetime] = current_time,
    ) -> None:
        self._schedules = schedules
        self._offset = (
            settings.reminder_offset_minutes
            if reminder_offset_minutes is None
            else reminder_offset_minutes
        )
        self._clock = clock

    async def handle_records(self, records: Iterable[StreamRecord]) -> BatchReport:
        """Process a batch. A failing record is logged and never stops the batch."""
        report = BatchReport()
        for record in records:
            try:
                outcome, error = self._process(record)
            except Exception as exc:
                logger.exception(
                    "Error processing %s record for taskId: %s",
                    record.event_name,
                    record.task_id,
                )
                outcome = Outcome.PERMANENT_FAILURE
                error = f"Exception for taskId: {record.task_id} - {exc}"
            report.record(outcome, error)

        if report.outcomes:
            logger.info("Task change batch: %s", report.message)
        return report

    def _process(self, record: StreamRecord) -> _Result:
        if record.event_name == EventName.INSERT:
            return self._on_insert(record.new_image)
        if record.event_name == EventName.MODIFY:
            return self._on_modify(record.new_image, record.old_image)
        logger.debug("Skipping %s event for taskId: %s", record.event_name, record.task_id)
        return Outcome.SKIPPED, None

    # -- INSERT ----------------------------------------------------------------

    def _on_insert(self, new_image: dict[str, str]) -> _Result:
        task_id = new_image.get("taskId")
        if not task_id:
            logger.warning("taskId missing in inserted task")
            return Outcome.PERMANENT_FAILURE, "taskId missing in task object"

        deadline = parse_timestamp(new_image.get("deadline"), task_id=task_id)
        if deadline is None:
            logger.warning("No valid deadline for taskId: %s", task_id)
            return Outcome.SKIPPED, f"No deadline found for taskId: {task_id}"

        created = False
        remind_at = reminder_time(deadline, self._offset)
        if is_future(remind_at, self._clock()):
            self._schedules.delete_schedule(SchedulePurpose.REMINDER, task_id)
            created = self._schedules.create_schedule(
                SchedulePurpose.REMINDER, task_id, remind_at, new_image
            )
        else:
            logger.warning("Reminder time %s is in the past for taskId: %s", remind_at, task_id)

        if self._schedules.is_configured(SchedulePurpose.EXPIRATION):
            self._schedules.delete_schedule(SchedulePurpose.EXPIRATION, task_id)
            created = (
                self._schedules.create_schedule(
                    SchedulePurpose.EXPIRATION, task_id, deadline, new_image
                )
                or created
            )
        else:
            logger.warning("Expiration target not configured; skipping schedule for %s", task_id)

        if not created:
            return Outcome.SKIPPED, f"No schedule created for taskId: {task_id}"
        return Outcome.SUCCESS, None

    # -- MODIFY ----------------------------------------------------------------

    def _on_modify(self, new_image: dict[str, str], old_image: dict[str, str]) -> _Result:
        task_id = new_image.get("taskId")
        if not task_id:
            logger.warning("taskId missing in modified task")
            return Outcome.PERMANENT_FAILURE, "Missing taskId in task"

        status = (new_image.get("status") or "unknown").upper()
        if status != ACTIVE_STATUS:
            # The expiration schedule is left in place: the detector re-reads the
            # task and the conditional EXPIRED update ignores terminal tasks.
            self._schedules.delete_schedule(SchedulePurpose.REMINDER, task_id)
            logger.info("Dropped reminder for taskId: %s due to status '%s'", task_id, status)
            return Outcome.SUCCESS, None

        new_deadline = new_image.get("deadline")
        if not new_deadline:
            logger.warning("Missing deadline for taskId: %s", task_id)
            self._schedules.delete_schedule(SchedulePurpose.REMINDER, task_id)
            return Outcome.SKIPPED, f"Missing deadline for taskId: {task_id}"

        deadline_changed = new_deadline != old_image.get("deadline")
        owner_changed = _owner(new_image) != _owner(old_image)
        if not deadline_changed and not owner_changed:
            logger.debug("No relevant changes for taskId: %s", task_id)
            return Outcome.SKIPPED, None

        deadline = parse_timestamp(new_deadline, task_id=task_id)
        self._schedules.delete_schedule(SchedulePurpose.REMINDER, task_id)
        if deadline is None:
            return Outcome.SKIPPED, f"Invalid deadline for taskId: {task_id}"

        remind_at = reminder_time(deadline, self._offset)
        if not is_future(remind_at, self._clock()):
            logger.warning("Reminder time %s is in the past for taskId: %s", remind_at, task_id)
            return Outcome.SKIPPED, f"Reminder time is in the past for taskId: {task_id}"

        if not self._schedules.create_schedule(
            SchedulePurpose.REMINDER, task_id, remind_at, new_image
        ):
            return Outcome.PERMANENT_FAILURE, f"Failed to create reminder for taskId: {task_id}"
        return Outcome.SUCCESS, None
