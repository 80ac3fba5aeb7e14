import asyncio
import time
from typing import Callable

from logging_config import get_logger

logger = get_logger(__name__)


def now_ms() -> float:
    """Wall clock in milliseconds since the epoch, the unit RoomState checkpoints use."""
    return time.time() * 1000


async def run_periodic(interval_ms: int, step: Callable[[], object], name: str):
    """
    Call `step` every `interval_ms` until cancelled.

    A failing step is logged and the loop keeps going; the next call gets a
    fresh chance, which is the only retry there is.
    """
    interval = interval_ms / 1000
    logger.debug(f"Starting periodic task {name} every {interval_ms}ms")
    try:
        while True:
            await asyncio.sleep(interval)
            try:
                step()
            except Exception as e:
                logger.error(f"Periodic task {name} failed: {e}", exc_info=True)
    except asyncio.CancelledError:
        logger.debug(f"Periodic task {name} cancelled")
        raise
