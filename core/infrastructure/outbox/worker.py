"""
Outbox Worker.

Long-running loop that drains the outbox: publishes due rows every poll
interval, alerts when rows end up FAILED, and purges old PUBLISHED rows.
Started by the API on startup and cancelled on shutdown.
"""
import asyncio
import logging
import time
from typing import Optional

from core.settings.sections import OutboxSettings

from .publisher import OutboxPublisher


logger = logging.getLogger(__name__)


async def run_outbox_worker(
    publisher: OutboxPublisher,
    settings: Optional[OutboxSettings] = None,
) -> None:
    """
    Run the outbox loop until cancelled.

    A failing iteration is logged and the loop carries on after the poll
    interval; only cancellation stops it.

    Args:
        publisher: Publisher to drive
        settings: Cadence settings (defaults to ``OutboxSettings()``)
    """
    settings = settings or OutboxSettings()
    poll_interval = settings.poll_interval_seconds
    last_failed_check = 0.0
    last_cleanup = 0.0

    logger.info(f"Starting outbox worker (poll every {poll_interval}s)")
    try:
        while True:
            try:
                published = await publisher.publish_pending()
                if published:
                    logger.info(f"Outbox worker published {published} event(s)")

                now = time.monotonic()
                if now - last_failed_check >= settings.failed_check_interval_seconds:
                    last_failed_check = now
                    failed = await publisher.count_failed()
                    if failed:
                        logger.error(f"{failed} outbox event(s) FAILED permanently - manual replay required")

                if now - last_cleanup >= settings.cleanup_interval_seconds:
                    last_cleanup = now
                    await publisher.cleanup_published()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Outbox worker error: {e}", exc_info=True)

            await asyncio.sleep(poll_interval)
    finally:
        logger.info("Outbox worker stopped")
