"""
Time sources for the engines.

Engines never sleep or schedule; every time gate is a comparison against the
value returned by their clock (unix seconds).
"""
import time


class SystemClock:
    """Wall-clock time."""

    def __call__(self) -> int:
        return int(time.time())


class ManualClock:
    """
    Deterministic clock for tests and offline replays.

    Attributes:
        now: Current unix timestamp in seconds
    """

    def __init__(self, start: int = 1_600_000_000):
        self.now = int(start)

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self.now += int(seconds)
        return self.now

    def set(self, timestamp: int) -> None:
        if timestamp < self.now:
            raise ValueError(f"clock cannot move backwards: {timestamp} < {self.now}")
        self.now = int(timestamp)
