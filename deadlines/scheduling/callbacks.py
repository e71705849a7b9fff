"""Entry points that APScheduler jobs and webhooks resolve by textual reference.

Jobs are stored as ``module:function`` strings so they can live in a
persistent job store, which means the callables cannot close over the
collaborators. Those are wired here once at startup instead.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from deadlines.tasks.stream import StreamRecord

if TYPE_CHECKING:
    from deadlines.expiration.detector import ExpirationDetector, ExpirationResult, SweepReport
    from deadlines.notifications.reminders import ReminderSender
    from deadlines.results import BatchReport, Outcome
    from deadlines.scheduling.reactor import TaskChangeReactor

logger = logging.getLogger(__name__)

# Module-level state, set by init_callbacks() during startup.
_detector: ExpirationDetector | None = None
_reminders: ReminderSender | None = None
_reactor: TaskChangeReactor | None = None


def init_callbacks(
    detector: ExpirationDetector,
    reminders: ReminderSender,
    reactor: TaskChangeReactor | None = None,
) -> None:
    """Wire dependencies. Called once during startup."""
    global _detector, _reminders, _reactor  # noqa: PLW0603
    _detector = detector
    _reminders = reminders
    _reactor = reactor


def reset_callbacks() -> None:
    global _detector, _reminders, _reactor  # noqa: PLW0603
    _detector = None
    _reminders = None
    _reactor = None


async def fire_reminder(payload: Mapping[str, Any]) -> Outcome | None:
    if _reminders is None:
        logger.warning("Reminder fired before callbacks were initialised: %s", dict(payload))
        return None
    return await _reminders.send_reminder(payload)


async def fire_expiration(payload: Mapping[str, Any]) -> ExpirationResult | None:
    if _detector is None:
        logger.warning("Expiration fired before callbacks were initialised: %s", dict(payload))
        return None
    return await _detector.handle_payload(payload)


async def run_sweep() -> SweepReport | None:
    if _detector is None:
        logger.warning("Expiration sweep fired before callbacks were initialised")
        return None
    return await _detector.sweep()


async def apply_task_changes(records: list[Mapping[str, Any]]) -> BatchReport | None:
    """Feed externally delivered mutation records to the reactor."""
    if _reactor is None:
        logger.warning("Task changes received before callbacks were initialised")
        return None
    return await _reactor.handle_records([StreamRecord.from_dict(r) for r in records])
