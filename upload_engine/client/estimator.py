"""
Upload speed and time-remaining estimation
"""
import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class SpeedSample:
    bytes_per_second: float
    time_remaining: Optional[float]


class SpeedEstimator:
    """
    Turns cumulative byte counts into speed/ETA samples, at most one per
    ``min_interval`` seconds. The first call only sets the baseline.
    """

    def __init__(
        self,
        total_size: int,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.total_size = total_size
        self.min_interval = min_interval
        self.clock = clock
        self._last_time: Optional[float] = None
        self._last_bytes = 0

    def reset(self) -> None:
        self._last_time = None
        self._last_bytes = 0

    def sample(self, bytes_so_far: int, timestamp: Optional[float] = None) -> Optional[SpeedSample]:
        now = self.clock() if timestamp is None else timestamp

        if self._last_time is None:
            self._last_time = now
            self._last_bytes = bytes_so_far
            return None

        elapsed = now - self._last_time
        if elapsed <= 0 or elapsed < self.min_interval:
            return None

        speed = max(0.0, (bytes_so_far - self._last_bytes) / elapsed)
        if speed > 0:
            time_remaining = max(0.0, (self.total_size - bytes_so_far) / speed)
        else:
            time_remaining = None

        self._last_time = now
        self._last_bytes = bytes_so_far
        return SpeedSample(bytes_per_second=speed, time_remaining=time_remaining)
