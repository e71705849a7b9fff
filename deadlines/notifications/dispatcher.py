"""NotificationDispatcher: tells the owner and the administrator that a task expired."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from deadlines.config import settings
from deadlines.results import Outcome, classify_error
from deadlines.scheduling.timing import format_timestamp

if TYPE_CHECKING:
    from deadlines.notifications.channels import IdentityProvider, NotificationTopic
    from deadlines.tasks.models import Task

logger = logging.getLogger(__name__)

# user_id attribute value carried by the admin-oriented message
ADMIN_FILTER_VALUE = "admin"

_STEPS = ("subscribe_owner", "subscribe_admin", "publish_owner", "publish_admin")


@dataclass
class DispatchReport:
    """Per-step outcomes of one notification cycle."""

    task_id: str
    steps: dict[str, Outcome] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return all(outcome.ok for outcome in self.steps.values())


class NotificationDispatcher:
    """Sends the expiration notices for a task.

    The four steps (subscribe owner, subscribe admin, publish owner
    message, publish admin message) run independently: a failure in one is
    logged and never stops the others, and nothing propagates to the caller.

    Args:
        topic: Publish/subscribe collaborator.
        identity: Resolves owner ids to email addresses. May be None when
            the identity provider is not configured.
        topic_name: Expiration topic (default from settings).
        admin_email: Fixed administrative recipient (default from settings).
    """

    def __init__(
        self,
        topic: NotificationTopic,
        identity: IdentityProvider | None,
        topic_name: str | None = None,
        admin_email: str | None = None,
    ) -> None:
        self._topic = topic
        self._identity = identity
        self._topic_name = settings.expiration_topic if topic_name is None else topic_name
        self._admin_email = settings.admin_email if admin_email is None else admin_email

    async def notify_expired(self, task: Task) -> DispatchReport:
        report = DispatchReport(task_id=task.task_id)
        if not self._topic_name:
            logger.warning("Expiration topic not configured; no notices for task %s", task.task_id)
            report.steps = dict.fromkeys(_STEPS, Outcome.SKIPPED)
            return report

        deadline = format_timestamp(task.deadline) or "unknown"
        report.steps["subscribe_owner"] = await self._run_step(
            "subscribe_owner", task, lambda: self._subscribe_owner(task)
        )
        report.steps["subscribe_admin"] = await self._run_step(
            "subscribe_admin", task, self._subscribe_admin
        )
        report.steps["publish_owner"] = await self._run_step(
            "publish_owner",
            task,
            lambda: self._topic.publish(
                self._topic_name,
                f"Task Expired: {task.name}",
                f"EXPIRED: Task '{task.name}' (ID: {task.task_id}) has expired. "
                f"The deadline was {deadline}.",
                attributes={"user_id": task.user_id},
            ),
        )
        report.steps["publish_admin"] = await self._run_step(
            "publish_admin",
            task,
            lambda: self._topic.publish(
                self._topic_name,
                "Admin Alert: Task Expired",
                f"Task '{task.name}' (ID: {task.task_id}) assigned to user {task.user_id} "
                f"has expired. The deadline was {deadline}.",
                attributes={"user_id": ADMIN_FILTER_VALUE},
            ),
        )

        if report.success:
            logger.info("Sent expiration notices for task %s", task.task_id)
        else:
            logger.warning(
                "Expiration notices for task %s incomplete: %s", task.task_id, report.steps
            )
        return report

    async def _run_step(
        self, step: str, task: Task, action: Callable[[], Awaitable[object]]
    ) -> Outcome:
        try:
            result = await action()
        except Exception as exc:
            outcome = classify_error(exc)
            logger.exception("Step %s failed for task %s (%s)", step, task.task_id, outcome)
            return outcome
        return result if isinstance(result, Outcome) else Outcome.SUCCESS

    async def _subscribe_owner(self, task: Task) -> Outcome:
        if self._identity is None:
            logger.warning("Identity provider not configured; owner %s unresolved", task.user_id)
            return Outcome.SKIPPED
        email = await self._identity.get_user_email(task.user_id)
        if email is None:
            return Outcome.NOT_FOUND
        await self._topic.subscribe(self._topic_name, email)
        return Outcome.SUCCESS

    async def _subscribe_admin(self) -> Outcome:
        if not self._admin_email:
            return Outcome.SKIPPED
        await self._topic.subscribe(self._topic_name, self._admin_email)
        return Outcome.SUCCESS
