"""NotificationChannel protocol — interface for staff alert delivery."""

from typing import Protocol, runtime_checkable

# Rows of buttons; each button is {"text": ..., "url": ...} or {"text": ..., "callback_data": ...}.
Buttons = list[list[dict[str, str]]]


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol that all notification channels must satisfy."""

    @property
    def name(self) -> str:
        """Unique channel identifier (e.g. 'telegram')."""
        ...

    async def send(self, recipient: str, message: str) -> bool:
        """Send a plain text message. Returns True on success."""
        ...

    async def send_rich(
        self,
        recipient: str,
        message: str,
        *,
        buttons: Buttons | None = None,
        parse_mode: str | None = None,
    ) -> bool:
        """Send a formatted message with optional buttons. Returns True on success."""
        ...
