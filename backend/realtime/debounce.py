"""Windowed debounce for async callbacks."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Coalesce bursts of ``trigger()`` calls into one ``callback()`` run.

    The first trigger opens a ``delay`` second window; triggers inside the
    window join it and the callback runs once when it closes. A steady stream
    of triggers therefore yields at most one run per window, never none.
    A trigger that arrives while the callback is running opens a new window.
    """

    def __init__(self, delay: float, callback: Callable[[], Awaitable[None]]):
        self.delay = delay
        self.callback = callback
        self._timer: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def trigger(self):
        if self.pending:
            return
        self._timer = asyncio.ensure_future(self._fire_later())

    async def _fire_later(self):
        await asyncio.sleep(self.delay)
        # Detach before running so a trigger during the callback is not lost.
        self._timer = None
        try:
            await self.callback()
        except Exception:
            logger.exception("Debounced callback failed")

    def cancel(self):
        if self.pending:
            self._timer.cancel()
        self._timer = None
