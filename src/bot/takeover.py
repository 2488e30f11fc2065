"""Human-takeover arbitration: who owns the right to reply.

A conversation starts ``AI_ACTIVE``. When a message leaves the account
that the assistant did not send, a human agent is handling the customer
and the conversation flips to ``HUMAN_ACTIVE``. On each new user turn the
arbiter decides whether automation may resume:

1. Still inside the cool-down window since the takeover: hold.
2. The latest assistant turn was typed by the human and is at least one
   cool-down old: resume (the human went quiet).
3. The latest assistant turn came from automation, or there is none:
   resume (nobody is waiting on the human).
4. Anything else, including no user turn at all: hold.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.bot.session import Conversation, Role, Turn, human_turn
from src.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Verdict:
    """Outcome of one arbitration.

    Attributes:
        should_respond: Automation may reply to this turn.
        resume: The conversation must transition back to ``AI_ACTIVE``.
        reason: Short machine-readable reason, for logs and tests.
    """

    should_respond: bool
    resume: bool = False
    reason: str = ""


class TakeoverArbiter:
    """Decides and applies takeover transitions for a conversation."""

    def __init__(self, cooldown: timedelta | None = None) -> None:
        self.cooldown = cooldown or timedelta(minutes=settings.takeover_cooldown_minutes)

    def record_human_reply(
        self,
        conversation: Conversation,
        text: str,
        external_id: str | None,
        now: datetime,
    ) -> Turn:
        """A human replied through the channel: hand the conversation over."""
        if not conversation.human_active:
            logger.info("Human takeover detected for %s", conversation.participant_id)
        conversation.mark_human_active(now)
        turn = human_turn(text, now, external_id)
        conversation.append(turn)
        return turn

    def evaluate(self, conversation: Conversation, now: datetime) -> Verdict:
        """Pure decision for the conversation's current state."""
        if not conversation.human_active:
            return Verdict(should_respond=True, reason="ai_active")

        elapsed = now - conversation.takeover_since
        if elapsed < self.cooldown:
            return Verdict(should_respond=False, reason="cooldown")

        last_user = conversation.last_turn(Role.USER)
        if last_user is None:
            return Verdict(should_respond=False, reason="no_user_turn")

        last_assistant = conversation.last_turn(Role.ASSISTANT)
        if last_assistant is None or last_assistant.produced_by_automation:
            return Verdict(should_respond=True, resume=True, reason="automation_last")

        if now - last_assistant.timestamp >= self.cooldown:
            return Verdict(should_respond=True, resume=True, reason="human_silent")
        return Verdict(should_respond=False, reason="human_recent")

    def apply(self, conversation: Conversation, verdict: Verdict) -> None:
        if verdict.resume and conversation.human_active:
            conversation.mark_ai_active()
            logger.info(
                "Re-enabling automation for %s (%s)",
                conversation.participant_id,
                verdict.reason,
            )

    def on_user_turn(self, conversation: Conversation, now: datetime) -> Verdict:
        """Evaluate and apply; called on every inbound user turn."""
        verdict = self.evaluate(conversation, now)
        self.apply(conversation, verdict)
        if not verdict.should_respond:
            remaining = self.cooldown - (now - conversation.takeover_since)
            logger.info(
                "Automation paused for %s (%s, %d min of cool-down left)",
                conversation.participant_id,
                verdict.reason,
                max(0, round(remaining.total_seconds() / 60)),
            )
        return verdict
