import time


class SystemClock:
    """Wall-clock time in whole seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """
    Clock that only moves when told to.

    Used by tests and simulations to step time deterministically.
    """

    def __init__(self, start: int = 0):
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def increase(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"Cannot move clock backwards by {seconds}s")
        self._now += int(seconds)
        return self._now

    def set(self, timestamp: int) -> int:
        if timestamp < self._now:
            raise ValueError(f"Cannot move clock backwards to {timestamp} (now {self._now})")
        self._now = int(timestamp)
        return self._now
