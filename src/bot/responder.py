"""Reply decisions for genuine inbound messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from src.bot.clock import utc_now
from src.bot.session import Role, automation_turn
from src.config import settings
from src.notifications.alerts import BuyerAlert, PaymentAlert

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from src.bot.clock import Clock
    from src.bot.intents import PurchaseIntentMatcher
    from src.bot.session import Conversation
    from src.bot.sent_messages import SentMessageRecord
    from src.bot.takeover import Verdict
    from src.instagram.client import UserProfile
    from src.llm.vision import PaymentResult
    from src.notifications.alerts import AlertNotifier

    Completer = Callable[[list[dict[str, str]], str, str | None], Awaitable[str]]
    ImageClassifier = Callable[[str], Awaitable[PaymentResult]]

logger = logging.getLogger(__name__)


class MessageTransport(Protocol):
    """The outbound side of the messaging channel."""

    async def send_message(self, recipient_id: str, text: str) -> str | None: ...

    async def send_typing(self, recipient_id: str, on: bool) -> None: ...

    async def get_user_profile(self, user_id: str) -> UserProfile: ...


@dataclass(frozen=True)
class Replies:
    """Scripted reply texts."""

    purchase_confirmation: str
    payment_ack: str
    fallback: str = ""

    @classmethod
    def from_settings(cls) -> Replies:
        return cls(
            purchase_confirmation=settings.purchase_confirmation_reply,
            payment_ack=settings.payment_ack_reply,
            fallback=settings.fallback_reply,
        )


class Responder:
    """Chooses between a scripted reply, a completion, or silence.

    Every message it sends is registered in ``sent_record`` and recorded in
    the conversation as an automation turn.
    """

    def __init__(
        self,
        transport: MessageTransport,
        completer: Completer,
        classifier: ImageClassifier,
        notifier: AlertNotifier,
        sent_record: SentMessageRecord,
        intents: PurchaseIntentMatcher,
        *,
        system_prompt: str,
        knowledge_base: str = "",
        replies: Replies | None = None,
        ai_enabled: bool = True,
        clock: Clock = utc_now,
    ) -> None:
        self._transport = transport
        self._completer = completer
        self._classifier = classifier
        self._notifier = notifier
        self._sent_record = sent_record
        self._intents = intents
        self._system_prompt = system_prompt
        self._knowledge_base = knowledge_base
        self._replies = replies or Replies.from_settings()
        self._ai_enabled = ai_enabled
        self._clock = clock

    def may_reply(self, verdict: Verdict) -> bool:
        return self._ai_enabled and verdict.should_respond

    async def respond(self, conversation: Conversation, verdict: Verdict) -> str | None:
        """Reply to the latest user turn if automation owns the conversation.

        Returns the text sent, or None when no reply was due.
        """
        participant_id = conversation.participant_id
        if not self._ai_enabled:
            logger.info("Automation disabled — not responding to %s", participant_id)
            return None
        if not verdict.should_respond:
            logger.info("Reply paused for %s — human takeover active", participant_id)
            return None

        last_user = conversation.last_turn(Role.USER)
        if last_user is None:
            return None

        try:
            if self._intents.matches(last_user.content):
                return await self._confirm_purchase(conversation)

            reply = await self._completer(
                conversation.history_for_completion(),
                self._system_prompt,
                self._knowledge_base or None,
            )
            await self._send_and_record(conversation, reply)
            return reply
        except Exception:
            if not self._replies.fallback:
                raise
            logger.exception("Reply failed for %s — sending fallback", participant_id)
            await self._send_and_record(conversation, self._replies.fallback)
            return self._replies.fallback

    async def handle_images(
        self,
        conversation: Conversation,
        image_urls: list[str],
        verdict: Verdict,
    ) -> int:
        """Classify image attachments and alert staff about payments.

        Each image is classified independently. The customer gets at most
        one acknowledgment per event. Returns the number of payments found.
        """
        participant_id = conversation.participant_id
        payments = 0
        profile: UserProfile | None = None

        for url in image_urls:
            try:
                result = await self._classifier(url)
            except Exception:
                logger.exception("Image classification failed for %s (%s)", participant_id, url)
                continue
            if not result.is_payment:
                logger.info("Image from %s is not a payment", participant_id)
                continue

            payments += 1
            if profile is None:
                profile = await self._transport.get_user_profile(participant_id)
            alert = PaymentAlert(
                participant_id=participant_id,
                image_url=url,
                name=profile.name,
                username=profile.username,
                amount=result.amount,
                reference_number=result.reference_number,
                sender_name=result.sender_name,
            )
            await self._notify(alert)

        if payments and self.may_reply(verdict):
            await self._send_and_record(conversation, self._replies.payment_ack)
        return payments

    async def _confirm_purchase(self, conversation: Conversation) -> str:
        participant_id = conversation.participant_id
        profile = await self._transport.get_user_profile(participant_id)
        await self._notify(
            BuyerAlert(participant_id=participant_id, name=profile.name, username=profile.username)
        )

        reply = self._replies.purchase_confirmation
        await self._send_and_record(conversation, reply)
        logger.info(
            "Purchase confirmation received from %s (@%s)",
            participant_id,
            profile.username or participant_id,
        )
        return reply

    async def _notify(self, alert: BuyerAlert | PaymentAlert) -> None:
        """Fire an alert; delivery problems never block the customer reply."""
        try:
            await self._notifier.notify(alert)
        except Exception:
            logger.exception(
                "Failed to send %s for %s", type(alert).__name__, alert.participant_id
            )

    async def _send_and_record(self, conversation: Conversation, text: str) -> None:
        message_id = await self._transport.send_message(conversation.participant_id, text)
        self._sent_record.add(message_id)
        conversation.append(automation_turn(text, self._clock(), message_id))
