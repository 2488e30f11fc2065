"""In-memory conversation state with a bounded message ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from src.config import settings


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class TakeoverState(StrEnum):
    AI_ACTIVE = "ai_active"
    HUMAN_ACTIVE = "human_active"


@dataclass(frozen=True)
class Turn:
    """A single message in a conversation.

    Attributes:
        role: Who the message is attributed to.
        content: Message text.
        timestamp: Creation time (aware UTC).
        external_id: Transport provenance id, used to correlate echoes.
        produced_by_automation: ``True`` for completion/scripted replies,
            ``False`` for replies a human agent typed, ``None`` for user turns.
    """

    role: Role
    content: str
    timestamp: datetime
    external_id: str | None = None
    produced_by_automation: bool | None = None

    def __post_init__(self) -> None:
        if self.role == Role.ASSISTANT and self.produced_by_automation is None:
            msg = "assistant turns must declare produced_by_automation"
            raise ValueError(msg)
        if self.role == Role.USER and self.produced_by_automation is not None:
            msg = "user turns cannot carry produced_by_automation"
            raise ValueError(msg)

    @property
    def human_authored(self) -> bool:
        return self.role == Role.ASSISTANT and self.produced_by_automation is False


def user_turn(content: str, timestamp: datetime, external_id: str | None = None) -> Turn:
    return Turn(Role.USER, content, timestamp, external_id)


def automation_turn(content: str, timestamp: datetime, external_id: str | None = None) -> Turn:
    return Turn(Role.ASSISTANT, content, timestamp, external_id, produced_by_automation=True)


def human_turn(content: str, timestamp: datetime, external_id: str | None = None) -> Turn:
    return Turn(Role.ASSISTANT, content, timestamp, external_id, produced_by_automation=False)


@dataclass
class Conversation:
    """Conversation history and takeover state for a single participant."""

    participant_id: str
    last_updated: datetime
    messages: list[Turn] = field(default_factory=list)
    takeover_state: TakeoverState = TakeoverState.AI_ACTIVE
    takeover_since: datetime | None = None
    last_user_message_at: datetime | None = None
    window_size: int = field(default_factory=lambda: settings.conversation_window_size)

    def append(self, turn: Turn) -> None:
        """Append a turn and trim to the most recent ``window_size`` turns."""
        self.messages.append(turn)
        self.last_updated = turn.timestamp
        if len(self.messages) > self.window_size:
            self.messages = self.messages[-self.window_size :]

    def history_for_completion(self) -> list[dict[str, str]]:
        """Format the ledger as chat-completion messages, oldest first."""
        return [{"role": str(t.role), "content": t.content} for t in self.messages]

    def last_turn(self, role: Role) -> Turn | None:
        """Most recent turn with the given role, scanning from the end."""
        for turn in reversed(self.messages):
            if turn.role == role:
                return turn
        return None

    # -- Takeover state ----------------------------------------------------------

    @property
    def human_active(self) -> bool:
        return self.takeover_state == TakeoverState.HUMAN_ACTIVE

    def mark_human_active(self, now: datetime) -> None:
        self.takeover_state = TakeoverState.HUMAN_ACTIVE
        self.takeover_since = now

    def mark_ai_active(self) -> None:
        self.takeover_state = TakeoverState.AI_ACTIVE
        self.takeover_since = None
