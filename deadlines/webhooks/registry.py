"""Webhook handler registry: maps a source name in ``/webhooks/<source>`` to a coroutine."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

# Handler signature: async (payload: dict) -> Any; the result is only logged
WebhookHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class WebhookRegistry:
    """Registry for named webhook handlers.

    Usage::

        registry = WebhookRegistry()

        @registry.handler("sweep")
        async def handle_sweep(payload: dict) -> SweepReport | None:
            ...
    """

    def __init__(self) -> None:
        self._handlers: dict[str, WebhookHandler] = {}

    def handler(self, source: str) -> Callable[[WebhookHandler], WebhookHandler]:
        """Decorator to register an async function as a webhook handler."""

        def decorator(fn: WebhookHandler) -> WebhookHandler:
            if source in self._handlers and self._handlers[source] is not fn:
                logger.warning("Replacing webhook handler for source %s", source)
            self._handlers[source] = fn
            logger.info("Registered webhook handler: %s", source)
            return fn

        return decorator

    def get(self, source: str) -> WebhookHandler | None:
        return self._handlers.get(source)

    @property
    def sources(self) -> list[str]:
        return sorted(self._handlers)


webhook_registry = WebhookRegistry()
