"""Telegram implementation of the NotificationChannel protocol."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import telegram
from telegram import InlineKeyboardButton, InlineKeyboardMarkup

if TYPE_CHECKING:
    from src.notifications.channels import Buttons

logger = logging.getLogger(__name__)


def _keyboard(buttons: Buttons | None) -> InlineKeyboardMarkup | None:
    if not buttons:
        return None
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton(
                text=btn["text"],
                url=btn.get("url"),
                callback_data=btn.get("callback_data"),
            )
            for btn in row
        ]
        for row in buttons
    ])


class TelegramChannel:
    """Posts staff alerts to a Telegram chat via the Bot API."""

    def __init__(self, bot: telegram.Bot) -> None:
        self._bot = bot

    @property
    def name(self) -> str:
        return "telegram"

    async def send(self, recipient: str, message: str) -> bool:
        """Send a plain text message to a chat (no parse mode)."""
        try:
            await self._bot.send_message(chat_id=recipient, text=message)
            return True
        except Exception:
            logger.exception("TelegramChannel.send failed for chat_id=%s", recipient)
            return False

    async def send_rich(
        self,
        recipient: str,
        message: str,
        *,
        buttons: Buttons | None = None,
        parse_mode: str | None = None,
    ) -> bool:
        """Send a formatted message, MarkdownV2 unless told otherwise."""
        try:
            await self._bot.send_message(
                chat_id=recipient,
                text=message,
                parse_mode=parse_mode or "MarkdownV2",
                reply_markup=_keyboard(buttons),
            )
            return True
        except Exception:
            logger.exception("TelegramChannel.send_rich failed for chat_id=%s", recipient)
            return False
