"""Process-wide conversation store with TTL eviction and per-key locking."""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from src.bot.clock import utc_now
from src.bot.session import Conversation
from src.config import settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from src.bot.clock import Clock

logger = logging.getLogger(__name__)


class KeyedLock:
    """Mutex map: one ``asyncio.Lock`` per key, dropped when nobody holds it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class ConversationStore:
    """Conversations keyed by participant id.

    Staleness is checked on every read, so the periodic ``sweep`` only
    bounds memory; an expired entry is never handed out.

    Args:
        clock: Source of the current time.
        ttl: How long a conversation survives without a new turn.
        window_size: Ledger cap for newly created conversations.
    """

    def __init__(
        self,
        clock: Clock = utc_now,
        ttl: timedelta | None = None,
        window_size: int | None = None,
    ) -> None:
        self._clock = clock
        if ttl is None:
            ttl = timedelta(minutes=settings.conversation_ttl_minutes)
        if window_size is None:
            window_size = settings.conversation_window_size
        self._ttl = ttl
        self._window_size = window_size
        self._conversations: dict[str, Conversation] = {}
        self._locks = KeyedLock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def _is_stale(self, conversation: Conversation, now: datetime, ttl: timedelta) -> bool:
        return now - conversation.last_updated > ttl

    def get(self, participant_id: str) -> Conversation | None:
        """Return the live conversation for a participant, or None."""
        conversation = self._conversations.get(participant_id)
        if conversation is None or self._is_stale(conversation, self._clock(), self._ttl):
            return None
        return conversation

    def get_or_create(self, participant_id: str) -> Conversation:
        """Return the live conversation, or a fresh one that is not yet stored."""
        conversation = self.get(participant_id)
        if conversation is None:
            conversation = Conversation(
                participant_id=participant_id,
                last_updated=self._clock(),
                window_size=self._window_size,
            )
        return conversation

    def put(self, participant_id: str, conversation: Conversation) -> None:
        self._conversations[participant_id] = conversation

    def sweep(self, now: datetime | None = None, ttl: timedelta | None = None) -> int:
        """Evict stale conversations. Returns the number removed."""
        if now is None:
            now = self._clock()
        if ttl is None:
            ttl = self._ttl
        stale = [
            (pid, conversation)
            for pid, conversation in list(self._conversations.items())
            if self._is_stale(conversation, now, ttl)
        ]
        removed = 0
        for pid, conversation in stale:
            # A handler may have replaced the entry since the snapshot.
            if self._conversations.get(pid) is not conversation:
                continue
            del self._conversations[pid]
            removed += 1
            logger.info("Cleaned up conversation for %s", pid)
        return removed

    def lock(self, participant_id: str) -> AbstractAsyncContextManager[None]:
        """Serialize event processing for one participant."""
        return self._locks.hold(participant_id)

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._conversations
