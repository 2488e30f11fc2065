"""Tests for InboundEventHandler: echoes, arbitration and replies end to end."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from src.bot.handlers import InboundEventHandler
from src.bot.intents import PurchaseIntentMatcher
from src.bot.responder import Replies, Responder
from src.bot.sent_messages import SentMessageRecord
from src.bot.session import Role, TakeoverState
from src.bot.store import ConversationStore
from src.bot.takeover import TakeoverArbiter
from src.instagram.client import UserProfile
from src.instagram.events import Attachment, InboundMessage, MessagingEvent
from src.llm.vision import PaymentResult
from src.notifications.alerts import BuyerAlert, PaymentAlert

CUSTOMER = "1789"
ACCOUNT = "1784"

REPLIES = Replies(
    purchase_confirmation="Great! Darwin will message you shortly.",
    payment_ack="Thank you! We received your payment screenshot.",
)


class FakeTransport:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.typing: list[tuple[str, bool]] = []
        self._counter = 0

    async def send_message(self, recipient_id: str, text: str) -> str:
        self._counter += 1
        message_id = f"mid.out{self._counter}"
        self.sent.append((recipient_id, text, message_id))
        return message_id

    async def send_typing(self, recipient_id: str, on: bool) -> None:
        self.typing.append((recipient_id, on))

    async def get_user_profile(self, user_id: str) -> UserProfile:
        return UserProfile(id=user_id, name="Juan Dela Cruz", username="juan.dc")


class Harness:
    def __init__(self, clock, ai_enabled: bool = True) -> None:
        self.clock = clock
        self.transport = FakeTransport()
        self.completer = AsyncMock(return_value="Hello! How can I help?")
        self.classifier = AsyncMock(return_value=PaymentResult())
        self.notifier = AsyncMock()
        self.notifier.notify.return_value = True
        self.sent_record = SentMessageRecord()
        self.store = ConversationStore(clock=clock, ttl=timedelta(hours=24), window_size=50)
        self.responder = Responder(
            transport=self.transport,
            completer=self.completer,
            classifier=self.classifier,
            notifier=self.notifier,
            sent_record=self.sent_record,
            intents=PurchaseIntentMatcher(),
            system_prompt="You are a helpful sales assistant.",
            knowledge_base="Course price: 1,778 PHP",
            replies=REPLIES,
            ai_enabled=ai_enabled,
            clock=clock,
        )
        self.handler = InboundEventHandler(
            store=self.store,
            arbiter=TakeoverArbiter(cooldown=timedelta(minutes=30)),
            responder=self.responder,
            sent_record=self.sent_record,
            transport=self.transport,
            clock=clock,
        )

    async def user_says(self, text: str | None, mid: str = "mid.in", images=()) -> None:
        message = InboundMessage(
            id=mid,
            text=text,
            attachments=[Attachment(type="image", url=url) for url in images],
        )
        await self.handler.handle(MessagingEvent(CUSTOMER, ACCOUNT, message))

    async def echo(self, text: str | None, mid: str) -> None:
        message = InboundMessage(id=mid, text=text, is_echo=True)
        await self.handler.handle(MessagingEvent(ACCOUNT, CUSTOMER, message))

    @property
    def conversation(self):
        return self.store.get(CUSTOMER)


@pytest.fixture
def h(clock) -> Harness:
    return Harness(clock)


class TestFreshConversation:
    async def test_first_message_gets_completion(self, h):
        await h.user_says("hi", "mid.in1")

        assert h.transport.sent == [(CUSTOMER, "Hello! How can I help?", "mid.out1")]
        assert "mid.out1" in h.sent_record
        conv = h.conversation
        assert conv.takeover_state == TakeoverState.AI_ACTIVE
        assert [(t.role, t.content) for t in conv.messages] == [
            (Role.USER, "hi"),
            (Role.ASSISTANT, "Hello! How can I help?"),
        ]
        assert conv.messages[-1].produced_by_automation is True
        assert conv.last_user_message_at == h.clock()

    async def test_completion_receives_history_and_prompts(self, h):
        await h.user_says("hi", "mid.in1")

        history, system_prompt, knowledge_base = h.completer.call_args.args
        assert history == [{"role": "user", "content": "hi"}]
        assert system_prompt == "You are a helpful sales assistant."
        assert knowledge_base == "Course price: 1,778 PHP"

    async def test_typing_bracket(self, h):
        await h.user_says("hi")
        assert h.transport.typing == [(CUSTOMER, True), (CUSTOMER, False)]

    async def test_event_without_message_is_ignored(self, h):
        await h.handler.handle(MessagingEvent(CUSTOMER, ACCOUNT, None))
        assert h.transport.typing == []
        assert len(h.store) == 0


class TestEchoes:
    async def test_own_echo_ignored(self, h):
        await h.user_says("hi", "mid.in1")
        await h.echo("Hello! How can I help?", "mid.out1")

        conv = h.conversation
        assert conv.takeover_state == TakeoverState.AI_ACTIVE
        assert len(conv.messages) == 2

    async def test_human_echo_takes_over(self, h):
        await h.user_says("hi", "mid.in1")
        await h.echo("Hi, this is Darwin. I'll help you", "mid.human1")

        conv = h.conversation
        assert conv.takeover_state == TakeoverState.HUMAN_ACTIVE
        assert conv.takeover_since == h.clock()
        last = conv.messages[-1]
        assert last.role == Role.ASSISTANT
        assert last.produced_by_automation is False
        assert last.external_id == "mid.human1"

    async def test_human_echo_without_prior_conversation(self, h):
        await h.echo("Hello from the team", "mid.human1")
        assert h.conversation.human_active

    async def test_echo_without_text_ignored(self, h):
        await h.echo(None, "mid.human1")
        assert h.conversation is None


class TestTakeover:
    async def test_reply_suppressed_during_cooldown(self, h):
        await h.user_says("hi", "mid.in1")
        await h.echo("I'll help you", "mid.human1")
        h.clock.advance(minutes=1)

        await h.user_says("thanks", "mid.in2")

        assert len(h.transport.sent) == 1
        conv = h.conversation
        assert conv.human_active
        assert conv.messages[-1].content == "thanks"
        assert conv.messages[-1].role == Role.USER

    async def test_automation_resumes_after_human_silence(self, h):
        await h.user_says("hi", "mid.in1")
        await h.echo("I'll help you", "mid.human1")
        h.clock.advance(minutes=31)

        await h.user_says("hello?", "mid.in2")

        assert len(h.transport.sent) == 2
        assert h.conversation.takeover_state == TakeoverState.AI_ACTIVE
        assert h.conversation.takeover_since is None

    async def test_ai_disabled_records_but_never_replies(self, clock):
        h = Harness(clock, ai_enabled=False)
        await h.user_says("hi")

        assert h.transport.sent == []
        assert [t.content for t in h.conversation.messages] == ["hi"]
        h.completer.assert_not_awaited()


class TestPurchaseIntent:
    async def test_exact_ok_confirms_purchase(self, h):
        await h.user_says("ok", "mid.in1")

        h.completer.assert_not_awaited()
        assert h.transport.sent[-1][1] == REPLIES.purchase_confirmation
        alert = h.notifier.notify.call_args.args[0]
        assert isinstance(alert, BuyerAlert)
        assert alert.participant_id == CUSTOMER
        assert alert.username == "juan.dc"
        assert "mid.out1" in h.sent_record

    async def test_intent_suppressed_under_takeover(self, h):
        await h.echo("Hi from staff", "mid.human1")
        await h.user_says("yes i want to buy", "mid.in1")

        assert h.transport.sent == []
        h.notifier.notify.assert_not_awaited()


class TestImages:
    async def test_payment_screenshot_alerts_and_acknowledges(self, h):
        h.classifier.return_value = PaymentResult(
            is_payment=True, amount="₱1,778.00", reference_number="1234 567 890"
        )

        await h.user_says(None, "mid.img1", images=["https://cdn.example/receipt.jpg"])

        alert = h.notifier.notify.call_args.args[0]
        assert isinstance(alert, PaymentAlert)
        assert alert.amount == "₱1,778.00"
        assert alert.image_url == "https://cdn.example/receipt.jpg"
        assert h.transport.sent == [(CUSTOMER, REPLIES.payment_ack, "mid.out1")]
        assert h.conversation.messages[-1].content == REPLIES.payment_ack

    async def test_non_payment_image_is_silent(self, h):
        await h.user_says(None, "mid.img1", images=["https://cdn.example/cat.jpg"])

        h.notifier.notify.assert_not_awaited()
        assert h.transport.sent == []
        assert h.conversation is None

    async def test_payment_during_takeover_alerts_without_ack(self, h):
        h.classifier.return_value = PaymentResult(is_payment=True, amount="500")
        await h.echo("I'll check your payment", "mid.human1")
        h.clock.advance(minutes=2)

        await h.user_says(None, "mid.img1", images=["https://cdn.example/receipt.jpg"])

        h.notifier.notify.assert_awaited_once()
        assert h.transport.sent == []

    async def test_acknowledged_payment_after_cooldown_resumes_automation(self, h):
        h.classifier.return_value = PaymentResult(is_payment=True, amount="1778")
        await h.user_says("hi", "mid.in1")
        await h.echo("I'll check with you shortly", "mid.human1")
        h.clock.advance(minutes=31)

        await h.user_says(None, "mid.img1", images=["https://cdn.example/receipt.jpg"])

        conv = h.conversation
        assert h.transport.sent[-1][1] == REPLIES.payment_ack
        assert conv.messages[-1].produced_by_automation is True
        assert conv.takeover_state == TakeoverState.AI_ACTIVE
        assert conv.takeover_since is None

    async def test_unacknowledged_image_keeps_takeover(self, h):
        await h.user_says("hi", "mid.in1")
        await h.echo("I'll check with you shortly", "mid.human1")
        h.clock.advance(minutes=31)

        await h.user_says(None, "mid.img1", images=["https://cdn.example/cat.jpg"])

        conv = h.conversation
        assert len(h.transport.sent) == 1
        assert conv.takeover_state == TakeoverState.HUMAN_ACTIVE
        assert conv.takeover_since is not None

    async def test_text_and_image_in_one_event(self, h):
        h.classifier.return_value = PaymentResult(is_payment=True)

        await h.user_says("here is my payment", "mid.in1", images=["https://cdn.example/r.jpg"])

        texts = [text for _, text, _ in h.transport.sent]
        assert texts == ["Hello! How can I help?", REPLIES.payment_ack]


class TestFailures:
    async def test_completion_failure_is_contained(self, h):
        h.completer.side_effect = RuntimeError("upstream down")

        await h.user_says("hi", "mid.in1")

        assert h.transport.sent == []
        assert h.transport.typing == [(CUSTOMER, True), (CUSTOMER, False)]
        assert [t.content for t in h.conversation.messages] == ["hi"]

    async def test_failure_does_not_affect_next_event(self, h):
        h.completer.side_effect = [RuntimeError("upstream down"), "Sorry about that!"]

        await h.user_says("hi", "mid.in1")
        await h.user_says("hello?", "mid.in2")

        assert [text for _, text, _ in h.transport.sent] == ["Sorry about that!"]

    async def test_classifier_failure_still_replies_to_text(self, h):
        h.classifier.side_effect = RuntimeError("vision down")

        await h.user_says("see attached", "mid.in1", images=["https://cdn.example/r.jpg"])

        assert [text for _, text, _ in h.transport.sent] == ["Hello! How can I help?"]


async def test_same_participant_events_are_serialized(h):
    """The second message sees the first reply in its history."""
    histories = []

    async def slow_completer(history, system_prompt, knowledge_base):
        histories.append(list(history))
        await asyncio.sleep(0.01)
        return f"reply {len(histories)}"

    h.responder._completer = slow_completer

    await asyncio.gather(h.user_says("first", "mid.in1"), h.user_says("second", "mid.in2"))

    assert histories[1] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "reply 1"},
        {"role": "user", "content": "second"},
    ]
    assert len(h.conversation.messages) == 4
