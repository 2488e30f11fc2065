"""Instagram Graph API messaging client using aiohttp."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import aiohttp

from src.config import settings

if TYPE_CHECKING:
    from src.bot.sent_messages import SentMessageRecord

logger = logging.getLogger(__name__)

# Instagram rejects message bodies over 2000 characters.
DEFAULT_CHUNK_SIZE = 1900
CHUNK_DELAY_SECONDS = 0.5


class InstagramAPIError(Exception):
    """The Graph API rejected a request."""

    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(f"Instagram API error: status={status} body={body[:200]}")


@dataclass(frozen=True)
class UserProfile:
    id: str
    name: str | None = None
    username: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.username or self.id


def split_message(text: str, max_length: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Split text into chunks of at most ``max_length`` characters.

    Prefers breaking after a sentence, then at a space, and only cuts
    mid-word when neither falls in the second half of the window.
    """
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    remaining = text
    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break

        break_point = remaining.rfind(". ", 0, max_length + 1)
        if break_point == -1 or break_point < max_length // 2:
            break_point = remaining.rfind(" ", 0, max_length)
        if break_point == -1 or break_point < max_length // 2:
            break_point = max_length - 1

        chunk = remaining[: break_point + 1].strip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining[break_point + 1 :].strip()

    return chunks


class InstagramClient:
    """Sends replies, typing indicators and profile lookups.

    Every message id the Graph API returns is registered in
    ``sent_record`` so its echo is recognised as our own.
    """

    def __init__(
        self,
        sent_record: SentMessageRecord,
        access_token: str | None = None,
        base_url: str | None = None,
        chunk_size: int | None = None,
    ) -> None:
        self._sent_record = sent_record
        if access_token is None:
            access_token = settings.instagram_access_token
        self._access_token = access_token
        self._base_url = (base_url or settings.instagram_graph_url).rstrip("/")
        self._chunk_size = chunk_size or settings.message_chunk_size
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        """Return (and lazily create) the shared aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _post_messages(self, payload: dict[str, Any]) -> dict[str, Any]:
        session = self._get_session()
        async with session.post(
            f"{self._base_url}/me/messages",
            json=payload,
            params={"access_token": self._access_token},
        ) as resp:
            if resp.status != 200:
                raise InstagramAPIError(resp.status, await resp.text())
            return await resp.json()

    async def send_message(self, recipient_id: str, text: str) -> str | None:
        """Send a text reply, chunked if long. Returns the last message id.

        Raises InstagramAPIError (or aiohttp.ClientError) on failure.
        """
        chunks = split_message(text, self._chunk_size)
        last_message_id: str | None = None

        for index, chunk in enumerate(chunks):
            if index:
                await asyncio.sleep(CHUNK_DELAY_SECONDS)
            data = await self._post_messages({
                "recipient": {"id": recipient_id},
                "message": {"text": chunk},
                "messaging_type": "RESPONSE",
            })
            message_id = data.get("message_id")
            if message_id:
                self._sent_record.add(message_id)
                last_message_id = message_id
            logger.info("Message sent to %s, message_id: %s", recipient_id, message_id)

        return last_message_id

    async def send_typing(self, recipient_id: str, on: bool) -> None:
        """Toggle the typing indicator. Failures are logged, never raised."""
        action = "typing_on" if on else "typing_off"
        try:
            await self._post_messages({
                "recipient": {"id": recipient_id},
                "sender_action": action,
            })
        except Exception:
            logger.exception("Error sending typing indicator (%s) to %s", action, recipient_id)

    async def get_user_profile(self, user_id: str) -> UserProfile:
        """Look up a participant's name and handle; bare profile on failure."""
        session = self._get_session()
        try:
            async with session.get(
                f"{self._base_url}/{user_id}",
                params={"fields": "name,username", "access_token": self._access_token},
            ) as resp:
                if resp.status != 200:
                    raise InstagramAPIError(resp.status, await resp.text())
                data = await resp.json()
        except Exception:
            logger.exception("Error fetching user profile for %s", user_id)
            return UserProfile(id=user_id)
        return UserProfile(id=user_id, name=data.get("name"), username=data.get("username"))
