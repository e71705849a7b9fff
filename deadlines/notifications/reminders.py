"""ReminderSender: delivers the advance notice when a reminder schedule fires."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING

from deadlines.config import settings
from deadlines.results import Outcome, classify_error
from deadlines.scheduling.timing import format_timestamp

if TYPE_CHECKING:
    from deadlines.notifications.channels import IdentityProvider, NotificationTopic
    from deadlines.tasks.models import Task
    from deadlines.tasks.store import TaskStore

logger = logging.getLogger(__name__)

REMINDER_SUBJECT = "Task Deadline Reminder"


def format_reminder(task: Task) -> str:
    return (
        f"Heading: {REMINDER_SUBJECT}\n"
        f"Task ID: {task.task_id}\n"
        f"Task Title: {task.name or 'Untitled'}\n"
        f"Assigned To: {task.user_id}\n"
        f"Due Date: {format_timestamp(task.deadline)}\n\n"
        f"Reminder: The task '{task.name or 'Untitled'}' assigned to you is due soon. "
        "Please ensure all deliverables are completed on time."
    )


class ReminderSender:
    """Sends a deadline reminder for the task named in a schedule payload.

    The payload is only used to find the task id; status, owner and
    deadline are re-read from the store so a stale snapshot never
    produces a reminder for a task that is no longer open.
    """

    def __init__(
        self,
        store: TaskStore,
        topic: NotificationTopic,
        identity: IdentityProvider | None,
        topic_name: str | None = None,
    ) -> None:
        self._store = store
        self._topic = topic
        self._identity = identity
        self._topic_name = settings.get_reminder_topic() if topic_name is None else topic_name

    async def send_reminder(self, payload: Mapping[str, str]) -> Outcome:
        task_id = payload.get("taskId")
        if not task_id:
            logger.error("Missing taskId in reminder payload: %s", dict(payload))
            return Outcome.PERMANENT_FAILURE
        if not self._topic_name or self._identity is None:
            logger.warning(
                "Reminder topic or identity provider not configured; skipping %s", task_id
            )
            return Outcome.SKIPPED

        try:
            task = await self._store.get_task(task_id)
            if task is None:
                logger.error("Task not found for taskId: %s", task_id)
                return Outcome.NOT_FOUND
            if not task.is_active:
                logger.info("Task %s is not active (status=%s); no reminder", task_id, task.status)
                return Outcome.SKIPPED
            if not task.user_id or task.deadline is None:
                logger.error("Missing userId or deadline for taskId: %s", task_id)
                return Outcome.PERMANENT_FAILURE

            email = await self._identity.get_user_email(task.user_id)
            if email is None:
                logger.error("No email found for userId: %s", task.user_id)
                return Outcome.NOT_FOUND

            await self._topic.publish(
                self._topic_name,
                REMINDER_SUBJECT,
                format_reminder(task),
                attributes={"user_id": task.user_id, "recipient_email": email},
            )
        except Exception as exc:
            outcome = classify_error(exc)
            logger.exception("Failed to send reminder for task %s (%s)", task_id, outcome)
            return outcome

        logger.info("Reminder sent for task %s to %s", task_id, email)
        return Outcome.SUCCESS
