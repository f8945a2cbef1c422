"""Trailing-edge debouncing on the asyncio loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .config import SYNC_DEBOUNCE_SECONDS

logger = logging.getLogger(__name__)


class Debouncer:
    """Collapse bursts of triggers into one trailing call per key.

    Each :meth:`trigger` resets the timer of its key; once ``delay`` seconds
    pass without another trigger for that key, ``callback`` runs once with
    the arguments of the last trigger. Keys are independent, so a burst of
    edits to one document never delays another.
    """

    def __init__(
        self,
        callback: Callable[..., Awaitable[Any]],
        delay: float = SYNC_DEBOUNCE_SECONDS,
        name: str = "debounce",
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._callback = callback
        self.delay = delay
        self.name = name
        self._loop = loop
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def trigger(self, key: str, *args: Any) -> None:
        loop = self._get_loop()
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        self._timers[key] = loop.call_later(self.delay, self._fire, key, args)

    def _fire(self, key: str, args) -> None:
        self._timers.pop(key, None)
        task = self._get_loop().create_task(self._run(key, args))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, key: str, args) -> None:
        try:
            await self._callback(*args)
        except Exception:
            logger.exception("Error in %s callback for %s", self.name, key)

    def pending(self) -> list[str]:
        return sorted(self._timers)

    def cancel(self, key: Optional[str] = None) -> None:
        """Cancel the pending call for ``key``, or every pending call."""
        keys = [key] if key is not None else list(self._timers)
        for k in keys:
            timer = self._timers.pop(k, None)
            if timer is not None:
                timer.cancel()

    async def drain(self) -> None:
        """Wait for callbacks that already fired."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
