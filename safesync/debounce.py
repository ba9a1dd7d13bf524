"""
Debounce Registry
Per-key timers that collapse bursts of work into one run.

Each key is in one of three states:
  idle     → no entry
  pending  → timer armed, payload replaceable
  running  → timer fired, task in flight

Scheduling a key that is pending cancels the armed timer and arms a new
one with the latest payload. Scheduling a key that is running leaves the
in-flight task alone and arms a fresh timer beside it.

All bookkeeping runs synchronously on the event loop thread, so arming
and cancelling for one key can never interleave.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Hashable

logger = logging.getLogger("safesync.debounce")


class _Entry:
    __slots__ = ("handle", "factory", "task")

    def __init__(self, factory: Callable[[], Awaitable]):
        self.handle: asyncio.TimerHandle = None
        self.factory = factory
        self.task: asyncio.Task = None

    @property
    def fired(self) -> bool:
        return self.task is not None


class DebounceRegistry:
    """
    Owns the pending timers and in-flight tasks for a set of keys.

    Args:
        on_error: Called with (key, exception) when a fired task fails.
    """

    def __init__(self, on_error: Callable[[Hashable, BaseException], None] = None):
        self._entries: dict[Hashable, _Entry] = {}
        self._inflight: set[asyncio.Task] = set()
        self._on_error = on_error

    def schedule(self, key: Hashable, delay: float, factory: Callable[[], Awaitable]) -> None:
        """
        Arm (or re-arm) the timer for ``key``.

        Must be called from a running event loop.

        Args:
            key: Debounce key.
            delay: Seconds to wait before running.
            factory: Zero-argument callable returning the awaitable to run.
        """
        loop = asyncio.get_running_loop()

        previous = self._entries.get(key)
        if previous is not None and not previous.fired:
            previous.handle.cancel()

        entry = _Entry(factory)
        entry.handle = loop.call_later(delay, self._fire, key, entry)
        self._entries[key] = entry

    def _fire(self, key: Hashable, entry: _Entry) -> None:
        entry.handle.cancel()
        entry.task = asyncio.get_running_loop().create_task(entry.factory())
        self._inflight.add(entry.task)
        entry.task.add_done_callback(lambda task: self._finish(key, entry, task))

    def _finish(self, key: Hashable, entry: _Entry, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        # A newer entry may have been armed while this one was running
        if self._entries.get(key) is entry:
            del self._entries[key]

        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            if self._on_error is not None:
                self._on_error(key, exc)
            else:
                logger.error("Debounced task for %r failed: %s", key, exc)

    def is_pending(self, key: Hashable) -> bool:
        """True when a timer is armed and has not fired yet."""
        entry = self._entries.get(key)
        return entry is not None and not entry.fired

    def is_running(self, key: Hashable) -> bool:
        """True when the latest entry for ``key`` has fired and not finished."""
        entry = self._entries.get(key)
        return entry is not None and entry.fired and not entry.task.done()

    def cancel(self, key: Hashable) -> bool:
        """Drop an armed timer. In-flight tasks are not interrupted."""
        entry = self._entries.get(key)
        if entry is None or entry.fired:
            return False
        entry.handle.cancel()
        del self._entries[key]
        return True

    async def flush(self) -> None:
        """Fire every armed timer now and wait for all in-flight tasks."""
        while True:
            for key, entry in list(self._entries.items()):
                if not entry.fired:
                    self._fire(key, entry)
            if not self._inflight:
                return
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries
