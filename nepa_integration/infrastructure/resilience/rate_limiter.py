"""Implementation of a rate limiter.

Controls the frequency of outgoing requests per upstream target using a
sliding window. Admission never fails: once a target's budget for the
trailing window is spent, callers wait until the oldest request leaves
the window.
"""

import asyncio
import logging
import time
from collections import defaultdict, deque
from typing import Awaitable, Callable, Deque, Dict

from nepa_integration.domain.models.api import RateLimitConfig
from nepa_integration.domain.models.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 100
DEFAULT_TIME_WINDOW_SECONDS = 60.0


def _validate_limits(max_requests: int, time_window: float) -> None:
    if max_requests < 1:
        raise ConfigurationError(f"Rate limit max_requests must be at least 1, got {max_requests}")
    if time_window <= 0:
        raise ConfigurationError(f"Rate limit time window must be positive, got {time_window}")


class RateLimiter:
    """Sliding window rate limiter keyed by target."""

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        time_window: float = DEFAULT_TIME_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initializes the rate limiter.

        Args:
            max_requests: Maximum number of requests allowed in the time window.
            time_window: The time window in seconds.
            clock: Monotonic time source in seconds.
            sleep: Coroutine function used to wait.

        Raises:
            ConfigurationError: If max_requests is below 1 or time_window is not positive.
        """
        _validate_limits(max_requests, time_window)
        self.max_requests = max_requests
        self.time_window = time_window
        self._clock = clock
        self._sleep = sleep
        self._windows: Dict[str, Deque[float]] = defaultdict(deque)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        logger.info(f"RateLimiter initialized: {max_requests} requests / {time_window} seconds")

    @classmethod
    def from_config(cls, config: RateLimitConfig, **kwargs) -> "RateLimiter":
        return cls(max_requests=config.max_requests, time_window=config.window_seconds, **kwargs)

    def update(self, config: RateLimitConfig) -> None:
        _validate_limits(config.max_requests, config.window_seconds)
        self.max_requests = config.max_requests
        self.time_window = config.window_seconds
        logger.info(f"RateLimiter updated: {self.max_requests} requests / {self.time_window} seconds")

    @property
    def tracked_targets(self) -> int:
        return len(self._windows)

    def window_size(self, target: str) -> int:
        return len(self._windows.get(target, ()))

    def _cleanup_timestamps(self, target: str, now: float) -> Deque[float]:
        """Removes timestamps that fell out of the trailing window."""
        timestamps = self._windows[target]
        cutoff = now - self.time_window
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()
        return timestamps

    async def admit(self, target: str) -> float:
        """Waits until a request to target is permitted, then records it.

        Returns:
            Total seconds spent waiting (0.0 when admitted immediately).
        """
        waited = 0.0
        async with self._locks[target]:
            while True:
                now = self._clock()
                timestamps = self._cleanup_timestamps(target, now)
                if len(timestamps) < self.max_requests:
                    timestamps.append(now)
                    logger.debug(f"Rate limit permission granted for {target}.")
                    return waited
                wait_time = max(0.0, timestamps[0] + self.time_window - now)
                logger.debug(f"Rate limit reached for {target}. Waiting for {wait_time:.2f} seconds.")
                await self._sleep(wait_time)
                waited += wait_time

    def get_wait_time(self, target: str) -> float:
        """Estimates the time needed before the next request to target can be made."""
        now = self._clock()
        timestamps = self._cleanup_timestamps(target, now)
        if len(timestamps) < self.max_requests:
            return 0.0
        return max(0.0, timestamps[0] + self.time_window - now)

    def reset(self) -> None:
        self._windows.clear()
