"""Fixed-window rate limiter guarding outbound account fetches."""

from __future__ import annotations

import asyncio
from time import monotonic
from typing import Awaitable, Callable, Optional

from ..config.settings import RateLimitConfig
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS


class RateLimitTimeout(TimeoutError):
    """Raised when a permit cannot be obtained within the acquire timeout."""


class RateLimiter:
    """Hands out ``permits`` per ``window_seconds``; the quota refreshes each window.

    ``acquire`` suspends until the next window when the quota is spent. If the
    next window starts after the acquire deadline the call fails immediately
    with :class:`RateLimitTimeout` instead of sleeping for nothing.
    """

    def __init__(
        self,
        permits: int,
        window_seconds: float,
        acquire_timeout_seconds: float,
        *,
        clock: Callable[[], float] = monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if permits < 1:
            raise ValueError("permits must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._permits = permits
        self._window = window_seconds
        self._timeout = max(0.0, acquire_timeout_seconds)
        self._clock = clock
        self._sleep = sleep
        self._window_start = clock()
        self._available = permits
        self._logger = get_logger(__name__)

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> "RateLimiter":
        return cls(
            permits=config.permits_per_window,
            window_seconds=config.window_seconds,
            acquire_timeout_seconds=config.acquire_timeout_seconds,
        )

    @property
    def available(self) -> int:
        self._refresh(self._clock())
        return self._available

    def _refresh(self, now: float) -> None:
        elapsed = now - self._window_start
        if elapsed >= self._window:
            windows = int(elapsed // self._window)
            self._window_start += windows * self._window
            self._available = self._permits

    def try_acquire(self) -> bool:
        self._refresh(self._clock())
        if self._available > 0:
            self._available -= 1
            return True
        return False

    async def acquire(self, timeout: Optional[float] = None) -> None:
        limit = self._timeout if timeout is None else max(0.0, timeout)
        deadline = self._clock() + limit
        while True:
            now = self._clock()
            self._refresh(now)
            if self._available > 0:
                self._available -= 1
                return
            wait = self._window_start + self._window - now
            if now + wait > deadline:
                METRICS.increment("rate_limiter.timeouts", 1)
                raise RateLimitTimeout(
                    f"No permit available within {limit:.3f}s "
                    f"({self._permits} per {self._window:.1f}s)"
                )
            self._logger.debug("Rate limit reached; waiting %.3fs for the next window", wait)
            await self._sleep(wait)


__all__ = ["RateLimitTimeout", "RateLimiter"]
