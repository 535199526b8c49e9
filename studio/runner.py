"""
Always-on worker runner.

returns_loop: periodically creates/escalates follow-up tasks for overdue
returns (see studio.services.returns_check).

Usage:
  python -m studio.runner
"""
from __future__ import annotations

import asyncio
import logging
import random
import signal

from studio.config import settings
from studio.db import init_db_pool, close_db_pool, get_pool
from studio.services.returns_check import check_overdue_returns

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# +/- spread applied to the check interval so several workers don't align
JITTER_FRACTION = 0.1

# Shutdown flag
_shutdown_event: asyncio.Event | None = None


def _jitter_sleep_seconds(interval_s: int, fraction: float = JITTER_FRACTION) -> float:
    """Return interval_s spread by up to +/- fraction, never below one second."""
    spread = interval_s * fraction
    return max(1.0, interval_s + random.uniform(-spread, spread))


async def returns_loop() -> None:
    """Run the overdue-returns check every RETURNS_CHECK_INTERVAL_S seconds."""
    global _shutdown_event
    assert _shutdown_event is not None

    logger.info("returns_loop started (interval %ds)", settings.returns_check_interval_s)
    iteration = 0

    while not _shutdown_event.is_set():
        iteration += 1
        try:
            pool = await get_pool()
            async with pool.acquire() as conn:
                result = await check_overdue_returns(conn)
            if result["tasks_created"] or result["tasks_updated"]:
                logger.info(
                    "returns_loop #%d: processed=%d created=%d updated=%d",
                    iteration,
                    result["processed"],
                    result["tasks_created"],
                    result["tasks_updated"],
                )
        except Exception as e:
            logger.error("returns_loop iteration %d error: %s", iteration, e)

        sleep_sec = _jitter_sleep_seconds(settings.returns_check_interval_s)
        try:
            await asyncio.wait_for(_shutdown_event.wait(), timeout=sleep_sec)
        except asyncio.TimeoutError:
            pass  # Normal timeout, continue loop

    logger.info("returns_loop shutting down")


def _handle_shutdown(signum, frame) -> None:
    """Signal handler for graceful shutdown."""
    global _shutdown_event
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, initiating graceful shutdown...", sig_name)
    if _shutdown_event is not None:
        _shutdown_event.set()


async def main() -> None:
    """Main entry point: start the loop and handle shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)

    logger.info("Starting studio worker runner (worker_id=%s)", settings.worker_id)

    await init_db_pool()
    logger.info("Database pool initialized")

    try:
        await returns_loop()
    finally:
        logger.info("Closing database pool...")
        await close_db_pool()
        logger.info("Worker runner stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass  # Already handled by signal handler
