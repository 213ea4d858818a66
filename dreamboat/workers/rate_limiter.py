"""
Rate limiter for external API calls.

Enforces a minimum spacing between consecutive calls to one dependency
(e.g. the Gemini vision endpoint used for photo validation). One limiter is
kept per dependency name, so every caller of the same client shares the
same spacing.
"""

import asyncio
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RateLimiter:
    """
    Minimum-interval limiter for an async dependency.

    Calls are serialized through an asyncio lock; a caller arriving less
    than `min_interval_seconds` after the previous call sleeps for the
    remainder before proceeding.
    """

    def __init__(
        self,
        min_interval_seconds: float = 1.0,
        name: str = "dependency",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            min_interval_seconds: Minimum time between calls
            name: Dependency label for logs
            clock: Monotonic clock, injectable for tests
            sleep: Awaitable sleep, injectable for tests
        """
        self.min_interval_seconds = min_interval_seconds
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._lock: Optional[asyncio.Lock] = None
        self.calls = 0

        logger.info(f"Rate limiter '{name}' initialized: min interval {min_interval_seconds}s")

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def acquire(self) -> float:
        """
        Wait until a call is allowed.

        Returns:
            Seconds spent waiting
        """
        async with self._get_lock():
            waited = 0.0
            now = self._clock()

            if self._last_call is not None:
                remaining = self.min_interval_seconds - (now - self._last_call)
                if remaining > 0:
                    logger.debug(f"Rate limiter '{self.name}': waiting {remaining:.2f}s")
                    await self._sleep(remaining)
                    waited = remaining
                    now = self._clock()

            self._last_call = now
            self.calls += 1
            return waited

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Acquire a slot, then await `func(*args, **kwargs)`."""
        await self.acquire()
        return await func(*args, **kwargs)

    def get_stats(self) -> dict:
        """Current limiter state."""
        return {
            "name": self.name,
            "min_interval_seconds": self.min_interval_seconds,
            "calls": self.calls,
            "last_call": self._last_call,
        }


# Per-dependency limiter registry
_limiters: Dict[str, RateLimiter] = {}
_limiters_lock = threading.Lock()


def get_rate_limiter(name: str, min_interval_seconds: float = 1.0) -> RateLimiter:
    """
    Get or create the shared limiter for a dependency.

    Args:
        name: Dependency label, e.g. "gemini-vision"
        min_interval_seconds: Spacing used when the limiter is first created

    Returns:
        The RateLimiter registered under `name`
    """
    limiter = _limiters.get(name)
    if limiter is None:
        with _limiters_lock:
            limiter = _limiters.get(name)
            if limiter is None:
                limiter = RateLimiter(min_interval_seconds=min_interval_seconds, name=name)
                _limiters[name] = limiter
    return limiter


__all__ = ["RateLimiter", "get_rate_limiter"]
