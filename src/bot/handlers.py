"""Inbound event processing: echo detection, ledger updates, arbitration."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from src.bot.clock import utc_now
from src.bot.session import user_turn

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from src.bot.clock import Clock
    from src.bot.responder import MessageTransport, Responder
    from src.bot.sent_messages import SentMessageRecord
    from src.bot.store import ConversationStore
    from src.bot.takeover import TakeoverArbiter
    from src.instagram.events import MessagingEvent

logger = logging.getLogger(__name__)


class InboundEventHandler:
    """Routes each webhook event to the ledger, the arbiter and the responder.

    ``handle`` is the per-event boundary: it never raises. Events for the
    same participant are processed one at a time.
    """

    def __init__(
        self,
        store: ConversationStore,
        arbiter: TakeoverArbiter,
        responder: Responder,
        sent_record: SentMessageRecord,
        transport: MessageTransport,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._arbiter = arbiter
        self._responder = responder
        self._sent_record = sent_record
        self._transport = transport
        self._clock = clock

    async def handle(self, event: MessagingEvent) -> None:
        if event.message is None:
            logger.debug("No message content in event from %s", event.sender_id)
            return
        try:
            if event.message.is_echo:
                await self._handle_echo(event)
            else:
                await self._handle_inbound(event)
        except Exception:
            logger.exception("Error handling event for %s", event.participant_id)

    async def _handle_echo(self, event: MessagingEvent) -> None:
        """A message left our account: ours looping back, or a human agent's."""
        participant_id = event.recipient_id
        message = event.message

        # Checked under the lock: our own send registers its id before releasing it.
        async with self._store.lock(participant_id):
            if message.id in self._sent_record:
                logger.debug("Echo of our own message %s ignored", message.id)
                return
            if not message.text:
                logger.debug("Echo without text to %s ignored", participant_id)
                return

            conversation = self._store.get_or_create(participant_id)
            self._arbiter.record_human_reply(conversation, message.text, message.id, self._clock())
            self._store.put(participant_id, conversation)
            logger.info("Automation paused for %s — human agent replied", participant_id)

    async def _handle_inbound(self, event: MessagingEvent) -> None:
        participant_id = event.sender_id
        message = event.message
        preview = (message.text or "[attachment]")[:80]
        logger.info("Received message from %s: %s", participant_id, preview)

        async with self._store.lock(participant_id), self._typing(participant_id):
            conversation = self._store.get_or_create(participant_id)
            now = self._clock()
            conversation.last_user_message_at = now
            try:
                if message.text:
                    conversation.append(user_turn(message.text, now, message.id))
                    verdict = self._arbiter.on_user_turn(conversation, now)
                    try:
                        await self._responder.respond(conversation, verdict)
                    except Exception:
                        logger.exception("Error replying to %s", participant_id)
                else:
                    verdict = self._arbiter.evaluate(conversation, now)

                if message.image_urls:
                    try:
                        payments = await self._responder.handle_images(
                            conversation, message.image_urls, verdict
                        )
                        # Automation acknowledged the payment, so it owns the conversation.
                        if payments and self._responder.may_reply(verdict):
                            self._arbiter.apply(conversation, verdict)
                    except Exception:
                        logger.exception("Error handling images from %s", participant_id)
            finally:
                if conversation.messages:
                    self._store.put(participant_id, conversation)

    @asynccontextmanager
    async def _typing(self, participant_id: str) -> AsyncIterator[None]:
        await self._transport.send_typing(participant_id, True)
        try:
            yield
        finally:
            await self._transport.send_typing(participant_id, False)
