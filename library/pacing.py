"""Concurrency primitives used by the scan pipeline."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

LOGGER = logging.getLogger("workshelf.library.pacing")


class ScanGuard:
    """Non-blocking single-flight guard.

    ``try_acquire`` never waits: a second caller is rejected while a run is
    active.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def active(self) -> bool:
        return self._lock.locked()


class RateLimiter:
    """Enforce a minimum gap between the end of one network-bound step and
    the start of the next.

    The first ``wait`` returns immediately, so nothing is slept after the
    last step of a run.
    """

    def __init__(
        self,
        interval_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._interval = max(0.0, float(interval_s))
        self._clock = clock
        self._sleep = sleep
        self._last_release: Optional[float] = None

    @property
    def interval_s(self) -> float:
        return self._interval

    def wait(self) -> float:
        if self._last_release is None or self._interval <= 0:
            return 0.0
        remaining = self._interval - (self._clock() - self._last_release)
        if remaining <= 0:
            return 0.0
        LOGGER.debug("Rate limiter sleeping %.2fs", remaining)
        self._sleep(remaining)
        return remaining

    def release(self) -> None:
        self._last_release = self._clock()


TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


class Debouncer:
    """Single cancel-and-reschedule timer slot."""

    def __init__(
        self,
        delay_s: float,
        callback: Callable[[], None],
        *,
        timer_factory: TimerFactory = threading.Timer,
        name: str = "debounce",
    ) -> None:
        self._delay = max(0.0, float(delay_s))
        self._callback = callback
        self._timer_factory = timer_factory
        self._name = name
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._lock = threading.Lock()

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            timer = self._timer_factory(self._delay, lambda: self._fire(generation))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A newer trigger or a cancel superseded this timer.
            if generation != self._generation:
                return
            self._timer = None
        try:
            self._callback()
        except Exception:
            LOGGER.exception("Debounced callback %s failed", self._name)


__all__ = ["Debouncer", "RateLimiter", "ScanGuard"]
