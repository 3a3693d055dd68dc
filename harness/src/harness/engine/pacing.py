from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from harness.contracts import PacingConfig

_LOGGER = logging.getLogger("baseline_harness.pacing")


class Pacer:
    """
    Spaces sample starts at least ``delay_ms`` apart across the whole run.

    Start slots are reserved under a lock from one global counter, so the delay
    holds across threads and across factor configurations. The first sample
    never waits. Waits go through an event: ``interrupt()`` ends them early
    without failing the run.
    """

    def __init__(
        self,
        delay_ms: int = 0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        if delay_ms < 0:
            raise ValueError("delay_ms must be non-negative")
        self._delay_s = delay_ms / 1000
        self._delay_ms = delay_ms
        self._clock = clock
        self._interrupted = threading.Event()
        self._sleep = sleep or self._interrupted.wait
        self._lock = threading.Lock()
        self._next_slot: float | None = None
        self._counter = 0

    @classmethod
    def from_config(
        cls,
        pacing: PacingConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] | None = None,
    ) -> Pacer:
        return cls(pacing.effective_min_delay_ms, clock=clock, sleep=sleep)

    @property
    def delay_ms(self) -> int:
        return self._delay_ms

    @property
    def samples_started(self) -> int:
        with self._lock:
            return self._counter

    @property
    def interrupted(self) -> bool:
        return self._interrupted.is_set()

    def reserve(self) -> tuple[int, float]:
        """Claim the next start slot: returns (global sample number, seconds to wait)."""
        with self._lock:
            self._counter += 1
            now = self._clock()
            if self._next_slot is None or self._delay_s == 0:
                start = now
            else:
                start = max(now, self._next_slot)
            self._next_slot = start + self._delay_s
            return self._counter, max(0.0, start - now)

    def acquire(self) -> int:
        """Reserve a slot and wait for it. Returns the global sample number."""
        number, wait_s = self.reserve()
        if wait_s > 0 and not self._interrupted.is_set():
            _LOGGER.debug("Pacing sample %d: waiting %.0fms", number, wait_s * 1000)
            self._sleep(wait_s)
        return number

    def interrupt(self) -> None:
        self._interrupted.set()
