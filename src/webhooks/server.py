"""Async HTTP server for the Instagram messaging webhook.

Meta delivers ``messages`` and ``message_echoes`` events to ``POST /webhook``
and verifies the subscription with ``GET /webhook``. Both subscriptions are
required: echoes are how a human agent's reply is detected.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from aiohttp import web

from src.config import settings
from src.instagram.events import parse_webhook
from src.instagram.security import verify_signature

if TYPE_CHECKING:
    from src.instagram.events import MessagingEvent
    from src.notifications.alerts import AlertNotifier

logger = logging.getLogger(__name__)

EventHandler = Callable[["MessagingEvent"], Awaitable[None]]

EVENT_HANDLER = web.AppKey("event_handler", object)
NOTIFIER = web.AppKey("notifier", object)
BACKGROUND_TASKS = web.AppKey("background_tasks", set)


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    return web.json_response({
        "status": "ok",
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    })


async def _verify_subscription(request: web.Request) -> web.Response:
    """GET /webhook — Meta subscription handshake."""
    mode = request.query.get("hub.mode")
    token = request.query.get("hub.verify_token")
    challenge = request.query.get("hub.challenge", "")

    if mode == "subscribe" and settings.instagram_verify_token and (
        token == settings.instagram_verify_token
    ):
        logger.info("Webhook verified successfully")
        return web.Response(text=challenge)

    logger.warning("Webhook verification failed (mode=%s)", mode)
    return web.Response(status=403)


async def _handle_webhook(request: web.Request) -> web.Response:
    """POST /webhook — acknowledge immediately, process events in the background."""
    body = await request.read()

    if settings.verify_signatures:
        signature = request.headers.get("X-Hub-Signature-256", "")
        if not verify_signature(body, signature, settings.instagram_app_secret):
            logger.warning("Webhook rejected: invalid signature")
            return web.Response(status=401)

    try:
        payload: dict[str, Any] = await request.json()
    except Exception:
        logger.warning("Webhook bad request: invalid JSON")
        return web.json_response({"error": "invalid JSON"}, status=400)

    if not isinstance(payload, dict):
        return web.json_response({"error": "invalid payload"}, status=400)

    events = parse_webhook(payload)
    if events is None:
        logger.warning("Webhook 404: unexpected object=%s", payload.get("object"))
        return web.Response(status=404)

    handler: EventHandler = request.app[EVENT_HANDLER]
    tasks: set[asyncio.Task] = request.app[BACKGROUND_TASKS]
    for event in events:
        task = asyncio.create_task(_run_handler(handler, event))
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    return web.Response(text="EVENT_RECEIVED")


async def _run_handler(handler: EventHandler, event: MessagingEvent) -> None:
    """Execute the event handler with error logging."""
    try:
        await handler(event)
    except Exception:
        logger.exception("Error processing message from %s", event.sender_id)


async def _test_telegram(request: web.Request) -> web.Response:
    """POST /test/telegram — check the staff alert channel end to end."""
    notifier: AlertNotifier = request.app[NOTIFIER]
    try:
        ok = await notifier.send_test("🤖 Instagram DM assistant is connected and working!")
    except Exception:
        logger.exception("Telegram test message failed")
        ok = False
    if not ok:
        return web.json_response(
            {"success": False, "error": "Failed to send Telegram message"}, status=500
        )
    return web.json_response({"success": True, "message": "Test message sent to Telegram"})


def _create_web_app(handler: EventHandler, notifier: AlertNotifier) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application()
    app[EVENT_HANDLER] = handler
    app[NOTIFIER] = notifier
    app[BACKGROUND_TASKS] = set()
    app.router.add_get("/health", _health)
    app.router.add_get("/webhook", _verify_subscription)
    app.router.add_post("/webhook", _handle_webhook)
    app.router.add_post("/test/telegram", _test_telegram)
    return app


class WebhookServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        handler: EventHandler,
        notifier: AlertNotifier,
        port: int | None = None,
    ) -> None:
        self.port = port or settings.webhook_port
        self._app = _create_web_app(handler, notifier)
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for webhook deliveries."""
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        logger.info("Webhook server listening on port %d", self.port)

    async def stop(self) -> None:
        """Shut down the server, letting in-flight events finish."""
        pending = list(self._app[BACKGROUND_TASKS])
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Webhook server stopped")
