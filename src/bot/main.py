"""Instagram DM assistant entry point."""

import asyncio
import logging

from src.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def main() -> None:
    """Start the webhook service."""
    from src.bot.app import run

    logger.info("Starting Instagram DM assistant on port %d...", settings.webhook_port)
    asyncio.run(run())


if __name__ == "__main__":
    main()
