"""Expiration rule shared by the targeted and sweep modes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from deadlines.scheduling.timing import is_past
from deadlines.tasks.models import TERMINAL_STATUSES

if TYPE_CHECKING:
    from datetime import datetime

    from deadlines.tasks.models import Task

def should_expire(task: Task | None, now: datetime) -> bool:
    """True when the task has a deadline before *now* and is not terminal."""
    if task is None or task.deadline is None:
        return False
    if task.status in TERMINAL_STATUSES:
        return False
    return is_past(task.deadline, now)

