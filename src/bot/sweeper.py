"""ConversationSweeper — recurring eviction of stale conversations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.config import settings

if TYPE_CHECKING:
    from src.bot.store import ConversationStore

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "conversation-sweep"


class ConversationSweeper:
    """Runs ``store.sweep()`` on a fixed interval.

    Args:
        store: The conversation store to prune.
        interval_seconds: Seconds between sweeps (default from settings).
    """

    def __init__(self, store: ConversationStore, interval_seconds: int | None = None) -> None:
        self._store = store
        if interval_seconds is None:
            interval_seconds = settings.sweep_interval_seconds
        self._interval = interval_seconds
        self._scheduler = AsyncIOScheduler()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Schedule the sweep job. Must be called with the event loop running."""
        self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self._interval),
            id=SWEEP_JOB_ID,
            name="Evict stale conversations",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        self._running = True
        logger.info("Conversation sweeper started (every %ds)", self._interval)

    def stop(self) -> None:
        """Cancel the recurring sweep."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Conversation sweeper stopped")

    async def run_once(self) -> int:
        """Sweep once on the event loop, between handler steps."""
        removed = self._store.sweep()
        if removed:
            logger.info("Swept %d stale conversation(s), %d remain", removed, len(self._store))
        return removed
