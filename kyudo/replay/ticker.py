"""Tick sources for the replay scheduler."""

import logging
import time
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

TickCallback = Callable[[float], None]


class Ticker:
    """
    Host "next redraw opportunity" capability.

    `request_tick` registers a one-shot callback that receives the current
    time in milliseconds at the next tick. Callbacks registered while a
    tick is being delivered wait for the following tick.
    """

    def __init__(self):
        self._pending: Dict[int, TickCallback] = {}
        self._next_handle = 1

    def request_tick(self, callback: TickCallback) -> int:
        """Schedule a callback for the next tick and return its handle."""
        handle = self._next_handle
        self._next_handle += 1
        self._pending[handle] = callback
        return handle

    def cancel_tick(self, handle: int) -> None:
        """Cancel a pending callback (unknown handles are ignored)."""
        self._pending.pop(handle, None)

    @property
    def pending(self) -> int:
        """Number of callbacks waiting for the next tick."""
        return len(self._pending)

    def _fire(self, now_ms: float) -> int:
        due, self._pending = self._pending, {}
        for handle in sorted(due):
            due[handle](now_ms)
        return len(due)


class ManualTicker(Ticker):
    """
    Ticker driven explicitly by the caller.

    Used by tests to simulate display refreshes deterministically and by
    offline rendering, where time advances one output frame at a time.
    """

    def __init__(self, start_ms: float = 0.0):
        super().__init__()
        self.now_ms = start_ms

    def tick(self, now_ms: Optional[float] = None) -> int:
        """
        Deliver one tick.

        Args:
            now_ms: Time of the tick (defaults to the current manual time).

        Returns:
            Number of callbacks fired.
        """
        if now_ms is not None:
            self.now_ms = now_ms
        return self._fire(self.now_ms)

    def advance(self, elapsed_ms: float) -> int:
        """Move time forward and deliver a tick."""
        self.now_ms += elapsed_ms
        return self._fire(self.now_ms)

    def run(self, interval_ms: float, max_ticks: Optional[int] = None) -> int:
        """
        Tick at a fixed interval until nothing is pending.

        Returns:
            Number of ticks delivered.
        """
        ticks = 0
        while self.pending and (max_ticks is None or ticks < max_ticks):
            self.advance(interval_ms)
            ticks += 1
        return ticks


class RefreshLoopTicker(Ticker):
    """
    Cooperative single-threaded refresh loop.

    Ticks are delivered at the display refresh rate for as long as
    callbacks are pending, using a monotonic clock.
    """

    def __init__(
        self,
        refresh_hz: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the refresh loop.

        Args:
            refresh_hz: Target tick rate.
            clock: Monotonic clock in seconds.
            sleep: Sleep function in seconds.
        """
        super().__init__()
        if refresh_hz <= 0:
            raise ValueError(f"refresh_hz must be positive, got {refresh_hz}")
        self.interval_s = 1.0 / refresh_hz
        self._clock = clock
        self._sleep = sleep

    def run(self, on_idle: Optional[Callable[[], bool]] = None) -> None:
        """
        Deliver ticks until no callback is pending.

        Args:
            on_idle: Called after every tick; returning False ends the loop
                early (e.g. the viewer window was closed).
        """
        next_deadline = self._clock()
        while self.pending:
            delay = next_deadline - self._clock()
            if delay > 0:
                self._sleep(delay)
            elif delay < -self.interval_s:
                # Fell behind; do not burst ticks to catch up
                next_deadline = self._clock()
            self._fire(self._clock() * 1000.0)
            next_deadline += self.interval_s

            if on_idle is not None and on_idle() is False:
                logger.debug("Refresh loop stopped by host")
                break
