"""Injectable wall clock."""

from collections.abc import Callable
from datetime import UTC, datetime

# A clock is any zero-argument callable returning an aware UTC datetime.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Production clock."""
    return datetime.now(UTC)
