"""Staff alerts: interested buyers and payment screenshots."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.notifications.channels import NotificationChannel

logger = logging.getLogger(__name__)

INSTAGRAM_PROFILE_URL = "https://www.instagram.com/{username}"
INSTAGRAM_INBOX_URL = "https://www.instagram.com/direct/inbox/"

_MARKDOWN_V2_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def escape_markdown(text: str) -> str:
    """Escape Telegram MarkdownV2 special characters."""
    return _MARKDOWN_V2_SPECIAL.sub(r"\\\1", text)


def profile_link(username: str | None) -> str:
    """Deep link staff can open to reach the customer."""
    if username:
        return INSTAGRAM_PROFILE_URL.format(username=username)
    return INSTAGRAM_INBOX_URL


@dataclass(frozen=True)
class BuyerAlert:
    """A customer confirmed they want to buy."""

    participant_id: str
    name: str | None = None
    username: str | None = None

    @property
    def link(self) -> str:
        return profile_link(self.username)

    def render(self) -> str:
        handle = escape_markdown(self.username or self.participant_id)
        lines = [
            "🛒 *New Interested Buyer*",
            "",
            f"IG username: @{handle}",
        ]
        if self.name:
            lines.append(f"Name: {escape_markdown(self.name)}")
        lines += [
            "",
            "wants to buy the course\\.",
            "",
            "please message now:",
            escape_markdown(self.link),
        ]
        return "\n".join(lines)


@dataclass(frozen=True)
class PaymentAlert:
    """A customer sent an image the classifier read as a payment."""

    participant_id: str
    image_url: str
    name: str | None = None
    username: str | None = None
    amount: str | None = None
    reference_number: str | None = None
    sender_name: str | None = None

    @property
    def link(self) -> str:
        return profile_link(self.username)

    def render(self) -> str:
        who = escape_markdown(self.name or self.username or self.participant_id)
        if self.username and self.name:
            who += f" \\(@{escape_markdown(self.username)}\\)"
        lines = [
            "💰 *Payment Screenshot Received*",
            "",
            f"From: {who}",
            f"Amount: {escape_markdown(self.amount or 'unknown')}",
        ]
        if self.reference_number:
            lines.append(f"Reference: {escape_markdown(self.reference_number)}")
        if self.sender_name:
            lines.append(f"Sender name: {escape_markdown(self.sender_name)}")
        lines += [
            "",
            f"Image: {escape_markdown(self.image_url)}",
            f"Conversation: {escape_markdown(self.link)}",
        ]
        return "\n".join(lines)


class AlertNotifier:
    """Delivers alerts to the staff chat over one notification channel.

    With no channel (no bot token configured) every send is a logged no-op.
    """

    def __init__(
        self,
        channel: NotificationChannel | None,
        chat_id: str,
        enabled: bool = True,
    ) -> None:
        self._channel = channel
        self._chat_id = chat_id
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled and self._channel is not None and bool(self._chat_id)

    async def notify(self, alert: BuyerAlert | PaymentAlert) -> bool:
        """Send an alert with an "Open conversation" button. Returns True on success."""
        if not self.enabled:
            logger.info(
                "Alerts disabled — skipping %s for %s",
                type(alert).__name__,
                alert.participant_id,
            )
            return False
        ok = await self._channel.send_rich(
            self._chat_id,
            alert.render(),
            buttons=[[{"text": "Open conversation", "url": alert.link}]],
            parse_mode="MarkdownV2",
        )
        if ok:
            logger.info("%s sent for %s", type(alert).__name__, alert.participant_id)
        else:
            logger.error("%s delivery failed for %s", type(alert).__name__, alert.participant_id)
        return ok

    async def send_test(self, text: str) -> bool:
        """Plain connectivity check, sent even when alerts are disabled."""
        if self._channel is None or not self._chat_id:
            logger.warning("No staff chat configured for test message")
            return False
        return await self._channel.send(self._chat_id, text)
