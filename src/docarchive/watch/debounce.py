"""
Keyed debouncing for bursts of events.
"""

import asyncio
from typing import Any, Awaitable, Callable, Hashable

from docarchive.utils.logging import get_logger

logger = get_logger(__name__)

Callback = Callable[[Hashable, Any], Awaitable[None]]
Merge = Callable[[Any, Any], Any]


class KeyedDebouncer:
    """
    Coalesces events per key within a quiet window.

    Each ``schedule(key, value)`` restarts the timer for that key. When a
    key has been quiet for ``delay`` seconds the callback runs once with
    the merged value. Keys are independent: a burst on one key never delays
    or absorbs another. Callback errors are logged, not raised.
    """

    def __init__(self, delay: float, callback: Callback, merge: Merge | None = None):
        self.delay = delay
        self.callback = callback
        self.merge = merge
        self._pending: dict[Hashable, tuple[asyncio.TimerHandle, Any]] = {}
        self._running: set[asyncio.Task] = set()

    def schedule(self, key: Hashable, value: Any = None) -> None:
        """Schedule (or reschedule) the callback for a key."""
        loop = asyncio.get_running_loop()
        previous = self._pending.pop(key, None)
        if previous is not None:
            handle, previous_value = previous
            handle.cancel()
            if self.merge is not None:
                value = self.merge(previous_value, value)
        handle = loop.call_later(self.delay, self._fire, key)
        self._pending[key] = (handle, value)

    def cancel(self, key: Hashable) -> bool:
        """Drop a pending key without running its callback."""
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        pending[0].cancel()
        return True

    def cancel_all(self) -> None:
        for handle, _ in self._pending.values():
            handle.cancel()
        self._pending.clear()

    def pending_keys(self) -> list[Hashable]:
        return list(self._pending)

    @property
    def running(self) -> int:
        return len(self._running)

    async def flush(self) -> None:
        """Fire every pending key now and wait for the callbacks."""
        for key in list(self._pending):
            handle, _ = self._pending[key]
            handle.cancel()
            self._fire(key)
        await self.drain()

    async def drain(self) -> None:
        """Wait until no callback is running."""
        while self._running:
            await asyncio.gather(*self._running)

    def _fire(self, key: Hashable) -> None:
        pending = self._pending.pop(key, None)
        if pending is None:
            return
        task = asyncio.ensure_future(self._invoke(key, pending[1]))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _invoke(self, key: Hashable, value: Any) -> None:
        try:
            await self.callback(key, value)
        except Exception as e:
            logger.error(f"Debounced callback for {key} failed: {e}")
