"""Task lifecycle actions: create, complete, close and reassign.

Every action writes through TaskStore, so the reactor sees the resulting
INSERT/MODIFY record and adjusts the task's schedules.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from deadlines.results import Outcome, classify_error
from deadlines.scheduling.timing import current_time, localize
from deadlines.tasks.models import Task, TaskStatus, make_task_id

if TYPE_CHECKING:
    from deadlines.tasks.store import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    outcome: Outcome
    task: Task | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome is Outcome.SUCCESS


class TaskService:
    def __init__(
        self,
        store: TaskStore,
        clock: Callable[[], datetime] = current_time,
    ) -> None:
        self._store = store
        self._clock = clock

    async def create_task(
        self,
        name: str,
        deadline: datetime | None,
        user_id: str,
        description: str = "",
        responsibility: str = "",
    ) -> ActionResult:
        if not name or not user_id:
            return ActionResult(Outcome.PERMANENT_FAILURE, error="name and user_id are required")
        if deadline is None:
            return ActionResult(Outcome.PERMANENT_FAILURE, error="deadline is required")

        task = Task(
            task_id=make_task_id(),
            name=name,
            deadline=localize(deadline),
            user_id=user_id,
            description=description,
            responsibility=responsibility,
            status=TaskStatus.OPEN,
            created_at=self._clock(),
        )
        try:
            await self._store.add_task(task)
        except Exception as exc:
            logger.exception("Failed to create task %s", name)
            return ActionResult(classify_error(exc), error=str(exc))
        return ActionResult(Outcome.SUCCESS, task=task)

    async def complete_task(self, task_id: str, user_comment: str | None = None) -> ActionResult:
        """Mark an open task COMPLETED, stamping completed_at."""

        def apply(task: Task) -> None:
            task.mark_completed(self._clock())
            if user_comment:
                task.user_comment = user_comment

        return await self._update(task_id, apply, "completed")

    async def close_task(self, task_id: str) -> ActionResult:
        return await self._update(task_id, lambda task: task.mark_closed(), "closed")

    async def reassign_task(
        self,
        task_id: str,
        user_id: str | None = None,
        deadline: datetime | None = None,
    ) -> ActionResult:
        """Change the owner and/or deadline of an open task."""
        if user_id is None and deadline is None:
            return ActionResult(Outcome.SKIPPED, error="nothing to change")

        def apply(task: Task) -> None:
            if user_id is not None:
                task.user_id = user_id
            if deadline is not None:
                task.deadline = localize(deadline)

        return await self._update(task_id, apply, "reassigned")

    # -- Internal --------------------------------------------------------------

    async def _update(self, task_id: str, apply: Callable[[Task], None], verb: str) -> ActionResult:
        try:
            task = await self._store.get_task(task_id)
            if task is None:
                return ActionResult(Outcome.NOT_FOUND, error=f"Task {task_id} not found")
            if task.is_terminal:
                return ActionResult(
                    Outcome.SKIPPED, task=task, error=f"Task is already {task.status}"
                )
            apply(task)
            if not await self._store.put_task(task):
                return ActionResult(Outcome.NOT_FOUND, error=f"Task {task_id} not found")
        except Exception as exc:
            logger.exception("Failed to update task %s", task_id)
            return ActionResult(classify_error(exc), error=str(exc))

        logger.info("Task %s %s", task_id, verb)
        return ActionResult(Outcome.SUCCESS, task=task)
