"""ScheduleStore: named one-shot schedules on top of APScheduler.

A schedule is an APScheduler job whose id is the deterministic schedule
name (``Reminder_<taskId>`` / ``Expiration_<taskId>``), whose trigger is a
``DateTrigger`` at the fire-at instant, and whose target is a textual
callable reference so that persistent job stores can serialize it.
Neither operation ever raises to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import TYPE_CHECKING

from apscheduler.jobstores.base import ConflictingIdError, JobLookupError
from apscheduler.triggers.date import DateTrigger

from deadlines.config import settings
from deadlines.results import Outcome
from deadlines.scheduling.timing import current_time, is_future

if TYPE_CHECKING:
    from datetime import datetime

    from apscheduler.job import Job
    from apscheduler.schedulers.base import BaseScheduler

logger = logging.getLogger(__name__)


class SchedulePurpose(StrEnum):
    REMINDER = "Reminder"
    EXPIRATION = "Expiration"


def schedule_name(purpose: SchedulePurpose | str, task_id: str) -> str:
    return f"{purpose}_{task_id}"


class ScheduleStore:
    """Creates and deletes one-shot schedules for tasks.

    Args:
        scheduler: The APScheduler instance that owns the jobs.
        targets: Callback reference per purpose (``"module:function"``).
            Defaults to the configured targets.
        executor: APScheduler executor alias that runs the callbacks.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        targets: Mapping[str, str] | None = None,
        executor: str | None = None,
        clock: Callable[[], datetime] = current_time,
    ) -> None:
        self._scheduler = scheduler
        self._targets = dict(settings.get_schedule_targets() if targets is None else targets)
        self._executor = settings.schedule_executor if executor is None else executor
        self._clock = clock

    def is_configured(self, purpose: SchedulePurpose) -> bool:
        """True when a callback target and an executor exist for *purpose*."""
        return bool(self._targets.get(str(purpose))) and bool(self._executor)

    def create_schedule(
        self,
        purpose: SchedulePurpose,
        task_id: str,
        fire_at: datetime,
        payload: Mapping[str, str],
    ) -> bool:
        """Create a one-shot schedule. Returns True on success.

        A fire-at instant that is not strictly in the future is skipped
        without touching the scheduler.
        """
        name = schedule_name(purpose, task_id)
        now = self._clock()
        if not is_future(fire_at, now):
            logger.warning(
                "Not creating %s: fire time %s is not after now (%s)",
                name,
                fire_at.isoformat(),
                now.isoformat(),
            )
            return False

        if not self.is_configured(purpose):
            logger.warning("Not creating %s: no callback target or executor configured", name)
            return False

        try:
            self._scheduler.add_job(
                self._targets[str(purpose)],
                trigger=DateTrigger(run_date=fire_at),
                id=name,
                name=name,
                kwargs={"payload": dict(payload)},
                executor=self._executor,
                misfire_grace_time=None,
                replace_existing=False,
            )
        except ConflictingIdError:
            logger.warning("Schedule %s already exists; delete it before recreating", name)
            return False
        except Exception:
            logger.exception("Failed to create schedule %s", name)
            return False

        logger.info("Created schedule %s at %s", name, fire_at.isoformat())
        return True

    def delete_schedule(self, purpose: SchedulePurpose, task_id: str) -> Outcome:
        """Delete a schedule. Missing schedules are expected and not an error."""
        name = schedule_name(purpose, task_id)
        try:
            self._scheduler.remove_job(name)
        except JobLookupError:
            logger.debug("No schedule %s to delete", name)
            return Outcome.NOT_FOUND
        except Exception:
            logger.exception("Error deleting schedule %s", name)
            return Outcome.PERMANENT_FAILURE
        logger.info("Deleted schedule %s", name)
        return Outcome.SUCCESS

    def get_schedule(self, purpose: SchedulePurpose, task_id: str) -> Job | None:
        return self._scheduler.get_job(schedule_name(purpose, task_id))
