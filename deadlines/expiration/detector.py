"""ExpirationDetector: moves overdue tasks to EXPIRED and starts their notices.

Two modes share one rule (``should_expire``):

- targeted: an expiration schedule fired for one task; the task is
  re-read, transitioned, and the dispatcher is called directly.
- sweep: every stored task is examined; each one that expires is pushed
  to the expiration queue, falling back to direct dispatch when the push
  fails or no queue is configured.

The EXPIRED transition is a conditional update in the store, so a task
that became terminal in the meantime is never overwritten and a task is
never notified twice by overlapping runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from deadlines.expiration.rules import should_expire
from deadlines.results import Outcome, classify_error
from deadlines.scheduling.timing import current_time
from deadlines.tasks.models import Task

if TYPE_CHECKING:
    from deadlines.expiration.queue import ExpirationQueue
    from deadlines.notifications.dispatcher import NotificationDispatcher
    from deadlines.tasks.store import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class ExpirationResult:
    task_id: str
    outcome: Outcome
    expired: bool = False


@dataclass
class SweepReport:
    scanned: int = 0
    expired: int = 0
    queued: int = 0
    direct: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def message(self) -> str:
        if self.errors:
            return f"Expired {self.expired} of {self.scanned} tasks with issues: " + "; ".join(
                self.errors
            )
        return f"Expired {self.expired} of {self.scanned} tasks."


class ExpirationDetector:
    def __init__(
        self,
        store: TaskStore,
        dispatcher: NotificationDispatcher,
        queue: ExpirationQueue | None = None,
        clock: Callable[[], datetime] = current_time,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._queue = queue
        self._clock = clock

    # -- Targeted mode ---------------------------------------------------------

    async def expire_task(self, task_id: str) -> ExpirationResult:
        """Expire one task if it is overdue and still open, then notify."""
        try:
            task = await self._store.get_task(task_id)
        except Exception as exc:
            outcome = classify_error(exc)
            logger.exception("Failed to read task %s (%s)", task_id, outcome)
            return ExpirationResult(task_id, outcome)

        if task is None:
            logger.warning("Task %s not found; nothing to expire", task_id)
            return ExpirationResult(task_id, Outcome.NOT_FOUND)

        now = self._clock()
        if not should_expire(task, now):
            logger.info(
                "Task %s does not need expiring (status=%s, deadline=%s)",
                task_id,
                task.status,
                task.deadline,
            )
            return ExpirationResult(task_id, Outcome.SKIPPED)

        outcome = await self._transition(task, now)
        if outcome is not Outcome.SUCCESS:
            return ExpirationResult(task_id, outcome)

        await self._dispatcher.notify_expired(task)
        return ExpirationResult(task_id, Outcome.SUCCESS, expired=True)

    async def handle_payload(self, payload: Mapping[str, Any]) -> ExpirationResult:
        """Targeted mode entry point for a schedule or webhook payload."""
        task_id = payload.get("taskId")
        if not task_id:
            logger.error("Missing taskId in expiration payload: %s", dict(payload))
            return ExpirationResult("unknown", Outcome.PERMANENT_FAILURE)
        return await self.expire_task(str(task_id))

    # -- Sweep mode ------------------------------------------------------------

    async def sweep(self) -> SweepReport:
        report = SweepReport()
        now = self._clock()
        try:
            images = await self._store.scan_images()
        except Exception as exc:
            logger.exception("Failed to scan tasks for expiration")
            report.errors.append(f"Scan failed: {exc}")
            return report

        for image in images:
            report.scanned += 1
            task_id = image.get("taskId", "unknown")
            try:
                delivery = await self._sweep_one(image, now)
            except Exception as exc:
                logger.exception("Error expiring task %s", task_id)
                report.errors.append(f"Exception for taskId: {task_id} - {exc}")
                continue
            if delivery is None:
                continue
            report.expired += 1
            if delivery == "queued":
                report.queued += 1
            else:
                report.direct += 1

        logger.info(
            "Expiration sweep finished: %d of %d task(s) expired (%d queued, %d direct, %d errors)",
            report.expired,
            report.scanned,
            report.queued,
            report.direct,
            len(report.errors),
        )
        return report

    async def _sweep_one(self, image: dict[str, str], now: datetime) -> str | None:
        """Expire one scanned task. Returns how it was delivered, or None if untouched."""
        try:
            task = Task.from_image(image)
        except ValueError as exc:
            raise ValueError(f"unreadable task record: {exc}") from exc

        if not should_expire(task, now):
            return None

        outcome = await self._transition(task, now)
        if outcome is Outcome.SKIPPED:
            return None
        if outcome is not Outcome.SUCCESS:
            raise RuntimeError(f"could not mark task expired ({outcome})")

        if await self._enqueue(task):
            return "queued"
        await self._dispatcher.notify_expired(task)
        return "direct"

    # -- Internal --------------------------------------------------------------

    async def _transition(self, task: Task, now: datetime) -> Outcome:
        try:
            won = await self._store.mark_expired(task.task_id, now)
        except Exception as exc:
            outcome = classify_error(exc)
            logger.exception("Failed to mark task %s expired (%s)", task.task_id, outcome)
            return outcome
        if not won:
            logger.info("Task %s was already terminal or removed; not expiring", task.task_id)
            return Outcome.SKIPPED

        task.mark_expired(now)
        logger.info(
            "Task %s has been marked as expired. Deadline was %s", task.task_id, task.deadline
        )
        return Outcome.SUCCESS

    async def _enqueue(self, task: Task) -> bool:
        if self._queue is None:
            logger.warning(
                "Expiration queue not configured; notifying task %s directly", task.task_id
            )
            return False
        try:
            await self._queue.send(task)
        except Exception:
            logger.exception(
                "Failed to queue task %s; falling back to direct notification", task.task_id
            )
            return False
        return True
