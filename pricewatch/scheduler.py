"""Follow-up scan timer for continuous scanning."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class ContinuousScanScheduler:
    """Runs one follow-up scan after a delay, if continuous mode is still on.

    At most one follow-up is pending at a time. The enabled flag is read
    when the timer fires, not when it is scheduled, so disabling continuous
    mode during the delay cancels the run.
    """

    def __init__(
        self,
        run_scan: Callable[[], Awaitable[object]],
        is_enabled: Callable[[], bool],
    ):
        """
        Initialize the scheduler.

        Args:
            run_scan: Coroutine function that performs one full scan
            is_enabled: Returns the current continuous-mode flag
        """
        self._run_scan = run_scan
        self._is_enabled = is_enabled
        self._task: asyncio.Task | None = None

    @property
    def is_pending(self) -> bool:
        """Check if a follow-up scan is waiting to fire."""
        return self._task is not None and not self._task.done()

    def schedule(self, delay: float) -> bool:
        """Schedule a follow-up scan. Returns False if one is already pending."""
        if self.is_pending:
            logger.debug("Follow-up scan already scheduled, skipping")
            return False

        self._task = asyncio.create_task(self._fire(delay))
        logger.info(f"Next continuous scan scheduled in {delay:g}s")
        return True

    def cancel(self) -> None:
        """Cancel the pending follow-up scan, if any."""
        if self._task and not self._task.done():
            self._task.cancel()
            logger.info("Pending continuous scan cancelled")
        self._task = None

    async def _fire(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # The scan below may schedule its own successor.
        self._task = None

        if not self._is_enabled():
            logger.info("Continuous scanning disabled, not starting follow-up scan")
            return

        try:
            await self._run_scan()
        except Exception as e:
            logger.error(f"Scheduled scan error: {e}")
