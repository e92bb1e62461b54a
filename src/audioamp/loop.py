"""
Single-threaded cooperative task queue.
- Every registry, watcher and activator mutation runs here, one callback at a time.
- `call_soon` is the only thread-safe entry point (the render thread posts `ended` through it).
- Time is either the wall clock or a virtual transport that only moves on `advance()`,
  so delayed re-attachment and the sampling cadence are deterministic under test.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Callable

logger = logging.getLogger("audioamp.loop")


class TimerHandle:
    """A scheduled callback. Fires at most once; `cancel()` is idempotent."""

    def __init__(self, when: float, fn: Callable, args: tuple):
        self.when = when
        self._fn = fn
        self._args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def _run(self) -> None:
        if self.cancelled or self.fired:
            return
        self.fired = True
        self._fn(*self._args)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else ("fired" if self.fired else "pending")
        return f"<TimerHandle {getattr(self._fn, '__name__', self._fn)} at {self.when:.3f} {state}>"


class TaskQueue:
    def __init__(self, clock: Callable[[], float] | None = None):
        self._clock = clock
        self._now = 0.0  # virtual transport position (seconds)
        self._lock = threading.RLock()
        self._wakeup = threading.Condition(self._lock)
        self._ready: deque[TimerHandle] = deque()
        self._timers: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    @classmethod
    def realtime(cls) -> TaskQueue:
        return cls(clock=time.monotonic)

    def time(self) -> float:
        return self._now if self._clock is None else self._clock()

    # ---------- scheduling ----------
    def call_soon(self, fn: Callable, *args) -> TimerHandle:
        with self._lock:
            handle = TimerHandle(self.time(), fn, args)
            self._ready.append(handle)
            self._wakeup.notify()
            return handle

    def call_later(self, delay: float, fn: Callable, *args) -> TimerHandle:
        with self._lock:
            handle = TimerHandle(self.time() + max(0.0, float(delay)), fn, args)
            heapq.heappush(self._timers, (handle.when, next(self._seq), handle))
            self._wakeup.notify()
            return handle

    def pending(self) -> int:
        with self._lock:
            live = sum(1 for _, _, h in self._timers if not h.cancelled)
            return live + sum(1 for h in self._ready if not h.cancelled)

    # ---------- running ----------
    def _collect_due(self) -> None:
        now = self.time()
        while self._timers and self._timers[0][0] <= now:
            _, _, handle = heapq.heappop(self._timers)
            if not handle.cancelled:
                self._ready.append(handle)

    def run_once(self) -> int:
        """Run every callback that is ready now. Callbacks queued meanwhile wait for the next pass."""
        with self._lock:
            self._collect_due()
            batch = list(self._ready)
            self._ready.clear()
        ran = 0
        for handle in batch:
            if handle.cancelled:
                continue
            try:
                handle._run()
            except Exception:
                logger.exception("task %r failed", handle)
            ran += 1
        return ran

    def run_until_idle(self, max_passes: int = 10_000) -> None:
        for _ in range(max_passes):
            with self._lock:
                self._collect_due()
                if not self._ready:
                    return
            self.run_once()
        logger.warning("task queue still busy after %d passes", max_passes)

    def advance(self, seconds: float) -> None:
        """Move the virtual transport forward, firing timers in time order."""
        if self._clock is not None:
            raise RuntimeError("advance() needs a virtual clock")
        target = self._now + max(0.0, float(seconds))
        self.run_until_idle()
        while True:
            with self._lock:
                while self._timers and self._timers[0][2].cancelled:
                    heapq.heappop(self._timers)
                if not self._timers or self._timers[0][0] > target:
                    break
                self._now = max(self._now, self._timers[0][0])
            self.run_until_idle()
        self._now = target
        self.run_until_idle()

    def run_forever(self, stop: threading.Event) -> None:
        """Wall-clock loop for interactive use; returns once `stop` is set."""
        while not stop.is_set():
            self.run_until_idle()
            with self._lock:
                if self._ready:
                    continue
                timeout = 0.05
                if self._timers:
                    timeout = min(timeout, max(0.0, self._timers[0][0] - self.time()))
                self._wakeup.wait(timeout)
