"""Async HTTP server for inbound task-change, expiration and sweep webhooks.

Runs in the same asyncio event loop as the scheduler and the queue
consumer. Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from aiohttp import web

from deadlines.config import settings
from deadlines.webhooks.registry import WebhookHandler, webhook_registry

logger = logging.getLogger(__name__)

# Strong references so fire-and-forget handler tasks are not garbage collected
_background_tasks: set[asyncio.Task] = set()


async def _handle_webhook(request: web.Request) -> web.Response:
    """Route POST /webhooks/<source> to the registered handler."""
    source = request.match_info["source"]

    secret = request.headers.get("X-Webhook-Secret", "")
    if not settings.webhook_secret or secret != settings.webhook_secret:
        logger.warning("Webhook rejected: invalid secret (source=%s)", source)
        return web.json_response({"error": "unauthorized"}, status=401)

    handler = webhook_registry.get(source)
    if handler is None:
        logger.warning("Webhook 404: no handler for source=%s", source)
        return web.json_response({"error": "unknown source"}, status=404)

    payload: dict[str, Any] = {}
    if request.can_read_body:
        try:
            payload = await request.json()
        except Exception:
            logger.warning("Webhook bad request: invalid JSON (source=%s)", source)
            return web.json_response({"error": "invalid JSON"}, status=400)
        if not isinstance(payload, dict):
            logger.warning("Webhook bad request: body is not an object (source=%s)", source)
            return web.json_response({"error": "expected a JSON object"}, status=400)

    logger.info(
        "Webhook received: source=%s, time=%s, keys=%s",
        source,
        time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        list(payload.keys())[:10],
    )

    # Fire-and-forget: return 200 immediately, process in background.
    task = asyncio.create_task(_run_handler(handler, source, payload))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return web.json_response({"ok": True})


async def _run_handler(handler: WebhookHandler, source: str, payload: dict[str, Any]) -> None:
    """Execute a webhook handler with error logging."""
    try:
        await handler(payload)
    except Exception:
        logger.exception("Webhook handler failed: source=%s", source)


async def _health(request: web.Request) -> web.Response:
    """GET /health: basic liveness check."""
    return web.json_response({"status": "ok", "sources": webhook_registry.sources})


def _create_web_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/health", _health)
    app.router.add_post("/webhooks/{source}", _handle_webhook)
    return app


class WebhookServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, port: int | None = None, host: str = "0.0.0.0") -> None:  # noqa: S104
        self.port = settings.webhook_port if port is None else port
        self.host = host
        self._runner: web.AppRunner | None = None

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Start listening. Does nothing when WEBHOOK_SECRET is empty."""
        if not settings.webhook_secret:
            logger.warning("WEBHOOK_SECRET empty; webhook server disabled")
            return

        # Import handlers so they register with the webhook_registry.
        import deadlines.webhooks.handlers  # noqa: F401

        app = _create_web_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(
            "Webhook server listening on port %d (sources: %s)",
            self.port,
            webhook_registry.sources or ["none registered"],
        )

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Webhook server stopped")
