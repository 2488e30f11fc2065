"""Application wiring and lifecycle."""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import timedelta
from typing import TYPE_CHECKING

import telegram

from src.bot.clock import utc_now
from src.bot.handlers import InboundEventHandler
from src.bot.intents import PurchaseIntentMatcher
from src.bot.responder import Replies, Responder
from src.bot.sent_messages import SentMessageRecord
from src.bot.store import ConversationStore
from src.bot.sweeper import ConversationSweeper
from src.bot.takeover import TakeoverArbiter
from src.config import settings
from src.instagram.client import InstagramClient
from src.llm.client import complete_chat
from src.llm.prompt import load_knowledge_base, load_system_prompt
from src.llm.vision import classify_payment
from src.notifications.alerts import AlertNotifier
from src.notifications.telegram_channel import TelegramChannel
from src.webhooks.server import WebhookServer

if TYPE_CHECKING:
    from src.bot.clock import Clock

logger = logging.getLogger(__name__)


def build_handler(
    transport: InstagramClient,
    sent_record: SentMessageRecord,
    notifier: AlertNotifier,
    store: ConversationStore,
    clock: Clock = utc_now,
) -> InboundEventHandler:
    """Assemble the arbiter, responder and event handler from settings."""
    arbiter = TakeoverArbiter(cooldown=timedelta(minutes=settings.takeover_cooldown_minutes))
    responder = Responder(
        transport=transport,
        completer=complete_chat,
        classifier=classify_payment,
        notifier=notifier,
        sent_record=sent_record,
        intents=PurchaseIntentMatcher(),
        system_prompt=load_system_prompt(),
        knowledge_base=load_knowledge_base(),
        replies=Replies.from_settings(),
        ai_enabled=settings.ai_enabled,
        clock=clock,
    )
    return InboundEventHandler(
        store=store,
        arbiter=arbiter,
        responder=responder,
        sent_record=sent_record,
        transport=transport,
        clock=clock,
    )


def _init_notifications(bot: telegram.Bot) -> AlertNotifier:
    """Wrap the bot in a Telegram channel and return the staff alert notifier."""
    channel = TelegramChannel(bot)
    logger.info(
        "Notifications initialized: channel=%s, alerts %s",
        channel.name,
        "enabled" if settings.telegram_notifications_enabled else "disabled",
    )
    return AlertNotifier(
        channel,
        chat_id=settings.telegram_chat_id,
        enabled=settings.telegram_notifications_enabled,
    )


def _log_startup() -> None:
    missing = settings.missing_required()
    if missing:
        logger.warning("Missing configuration: %s", ", ".join(missing))
    logger.info(
        "Chat model: %s, vision model: %s, automation %s",
        settings.chat_model,
        settings.vision_model,
        "enabled" if settings.ai_enabled else "disabled",
    )
    logger.info(
        "Human takeover: automation pauses when an agent replies and resumes after "
        "%d min of agent silence plus a new customer message",
        settings.takeover_cooldown_minutes,
    )


async def run() -> None:
    """Run the webhook server and sweeper until SIGINT/SIGTERM."""
    _log_startup()

    bot: telegram.Bot | None = None
    if settings.telegram_bot_token:
        bot = telegram.Bot(token=settings.telegram_bot_token)
        await bot.initialize()
        notifier = _init_notifications(bot)
    else:
        logger.warning("TELEGRAM_BOT_TOKEN not set — staff alerts disabled")
        notifier = AlertNotifier(None, chat_id="", enabled=False)

    sent_record = SentMessageRecord(capacity=settings.sent_message_capacity)
    transport = InstagramClient(sent_record)
    store = ConversationStore(
        ttl=timedelta(minutes=settings.conversation_ttl_minutes),
        window_size=settings.conversation_window_size,
    )
    handler = build_handler(transport, sent_record, notifier, store)

    server = WebhookServer(handler.handle, notifier)
    sweeper = ConversationSweeper(store)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await server.start()
    sweeper.start()
    try:
        await stop.wait()
    finally:
        logger.info("Shutting down...")
        sweeper.stop()
        await server.stop()
        await transport.close()
        if bot is not None:
            await bot.shutdown()
