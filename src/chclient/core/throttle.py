"""Client-side network bandwidth cap.

The throttler tracks how many bytes went over the wire since the first
call and sleeps whenever the average rate would exceed the cap.  The
clock and sleep functions are injectable so tests run instantly.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from chclient.exceptions import ArgumentError

LOG = logging.getLogger(__name__)


class Throttler:
    """Average-rate limiter measured in bytes per second.

    Usage::

        throttler = Throttler(1_000_000)
        throttler.add(len(chunk))   # sleeps if we are ahead of budget
    """

    def __init__(
        self,
        max_speed: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_speed <= 0:
            raise ArgumentError(
                f"max_client_network_bandwidth must be positive, got {max_speed}",
            )
        self.max_speed: int = max_speed
        self._clock = clock
        self._sleep = sleep
        self._start: float | None = None
        self._amount: int = 0

    @property
    def total_bytes(self) -> int:
        return self._amount

    def add(self, amount: int) -> float:
        """Account for *amount* bytes and return the seconds slept."""
        now = self._clock()
        if self._start is None:
            self._start = now
        self._amount += amount

        elapsed = now - self._start
        desired = self._amount / self.max_speed
        delay = desired - elapsed
        if delay <= 0:
            return 0.0

        LOG.debug("Throttling for %.3fs (%d bytes so far)", delay, self._amount)
        self._sleep(delay)
        return delay

    def reset(self) -> None:
        self._start = None
        self._amount = 0
