"""Decoded Instagram messaging webhook events."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

WEBHOOK_OBJECTS = {"instagram", "page"}


@dataclass(frozen=True)
class Attachment:
    type: str
    url: str


@dataclass(frozen=True)
class InboundMessage:
    """The ``message`` part of a messaging event.

    Attributes:
        id: Transport message id (``mid``), the provenance id for echoes.
        text: Message text, if any.
        attachments: Attachments in the order the transport listed them.
        is_echo: True when the message was sent *from* our own account.
    """

    id: str
    text: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    is_echo: bool = False

    @property
    def image_urls(self) -> list[str]:
        return [a.url for a in self.attachments if a.type == "image" and a.url]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InboundMessage:
        attachments = []
        for raw in data.get("attachments") or []:
            url = (raw.get("payload") or {}).get("url", "")
            attachments.append(Attachment(type=raw.get("type", ""), url=url))
        return cls(
            id=str(data.get("mid", "")),
            text=data.get("text") or None,
            attachments=attachments,
            is_echo=bool(data.get("is_echo", False)),
        )


@dataclass(frozen=True)
class MessagingEvent:
    """One entry of a webhook ``messaging`` array."""

    sender_id: str
    recipient_id: str
    message: InboundMessage | None = None
    timestamp: int | None = None

    @property
    def participant_id(self) -> str:
        """The customer's id: the recipient of an echo, otherwise the sender."""
        if self.message is not None and self.message.is_echo:
            return self.recipient_id
        return self.sender_id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessagingEvent:
        """Build an event. Raises KeyError/TypeError on a malformed entry."""
        sender_id = str(data["sender"]["id"])
        recipient_id = str(data["recipient"]["id"])
        raw_message = data.get("message")
        message = InboundMessage.from_dict(raw_message) if raw_message else None
        return cls(
            sender_id=sender_id,
            recipient_id=recipient_id,
            message=message,
            timestamp=data.get("timestamp"),
        )


def parse_webhook(payload: dict[str, Any]) -> list[MessagingEvent] | None:
    """Extract messaging events from a webhook body.

    Returns None when the body is not an Instagram/page webhook. Malformed
    entries are skipped with a warning.
    """
    if payload.get("object") not in WEBHOOK_OBJECTS:
        return None

    events: list[MessagingEvent] = []
    for entry in payload.get("entry") or []:
        for raw in entry.get("messaging") or []:
            try:
                events.append(MessagingEvent.from_dict(raw))
            except (KeyError, TypeError, AttributeError):
                logger.warning("Skipping malformed messaging event: %s", str(raw)[:200])
    return events
