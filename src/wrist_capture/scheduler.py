"""Cancellable timed transitions on the asyncio event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class TransitionScheduler:
    """Serial queue of delayed callbacks owned by one state machine.

    Every callback runs on the event loop thread as one non-preemptible step.
    The scheduler keeps the handle of each pending callback so an aborted
    cycle can cancel everything it has queued with ``cancel_all()``.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._handles: set[asyncio.TimerHandle] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def time(self) -> float:
        """Monotonic loop clock in seconds."""
        return self.loop.time()

    def schedule(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> asyncio.TimerHandle:
        """Run ``callback(*args)`` on the loop after ``delay`` seconds.

        Args:
            delay: Seconds from now. Zero runs the callback on the next loop
                iteration, never synchronously.
            callback: Plain function invoked on the loop thread.
            *args: Positional arguments passed to ``callback``.

        Returns:
            The loop's timer handle. It is also tracked here until it fires or
            ``cancel_all()`` cancels it.

        Note:
            Must be called from the loop thread. Callbacks scheduled for the
            same deadline run in scheduling order.
        """
        handle: asyncio.TimerHandle

        def fire() -> None:
            self._handles.discard(handle)
            callback(*args)

        handle = self.loop.call_later(delay, fire)
        self._handles.add(handle)
        return handle

    def cancel_all(self) -> int:
        """Cancel every pending callback and return how many were cancelled."""
        handles, self._handles = self._handles, set()
        for handle in handles:
            handle.cancel()
        if handles:
            logger.debug("Cancelled %d pending transitions", len(handles))
        return len(handles)

    @property
    def pending(self) -> int:
        return len(self._handles)
