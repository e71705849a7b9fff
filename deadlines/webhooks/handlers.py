"""Webhook sources for the deadline engine.

- ``task-changes``: ``{"records": [...]}`` stream records for the reactor
- ``expire``: ``{"taskId": ...}`` targeted expiration
- ``sweep``: run sweep mode now
"""

from __future__ import annotations

import logging
from typing import Any

from deadlines.scheduling import callbacks
from deadlines.webhooks.registry import webhook_registry

logger = logging.getLogger(__name__)


@webhook_registry.handler("task-changes")
async def handle_task_changes(payload: dict[str, Any]) -> Any:
    records = payload.get("records")
    if records is None:
        # Accept the capitalised key used by change-stream event envelopes
        records = payload.get("Records")
    if not isinstance(records, list):
        logger.warning("task-changes webhook without a records list (keys=%s)", list(payload))
        return None
    report = await callbacks.apply_task_changes(records)
    if report is not None:
        logger.info(report.message)
    return report


@webhook_registry.handler("expire")
async def handle_expire(payload: dict[str, Any]) -> Any:
    return await callbacks.fire_expiration(payload)


@webhook_registry.handler("sweep")
async def handle_sweep(payload: dict[str, Any]) -> Any:
    return await callbacks.run_sweep()
