"""
Resilience patterns for job delivery.

Provides the token bucket that caps job delivery rate, the timeout helper that
bounds a single job's execution, and run_blocking() for moving synchronous
database calls off the event loop.
"""

import asyncio
import functools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


# -----------------------------------------------------------------------------
# Delivery rate limiter
# -----------------------------------------------------------------------------


@dataclass
class RateLimiter:
    """
    Token bucket capping how many jobs a dispatcher hands out per second.

    `max_tokens` is the burst size: after an idle period up to that many jobs
    are delivered back to back, then delivery settles at `tokens_per_second`.

    Usage:
        limiter = RateLimiter(tokens_per_second=10, max_tokens=10)

        async with limiter:
            job = await claim_next()
    """

    tokens_per_second: float
    max_tokens: int

    _tokens: float = field(init=False)
    _last_update: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self):
        if self.tokens_per_second <= 0:
            raise ValueError(f"tokens_per_second must be positive, got {self.tokens_per_second}")
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be at least 1, got {self.max_tokens}")
        self._tokens = float(self.max_tokens)
        self._last_update = time.monotonic()

    @classmethod
    def per_second(cls, rate: float) -> "RateLimiter":
        """Limiter for `rate` deliveries/s with a one-second burst."""
        return cls(tokens_per_second=rate, max_tokens=max(1, int(rate)))

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_update
        self._tokens = min(self.max_tokens, self._tokens + elapsed * self.tokens_per_second)
        self._last_update = now

    @property
    def available(self) -> float:
        """Tokens that could be taken right now."""
        self._refill()
        return self._tokens

    async def acquire(self, tokens: int = 1) -> None:
        """Take `tokens`, sleeping until the bucket has refilled enough."""
        if tokens > self.max_tokens:
            raise ValueError(f"Cannot acquire {tokens} tokens from a bucket of {self.max_tokens}")

        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= tokens:
                    self._tokens -= tokens
                    return

                wait_time = (tokens - self._tokens) / self.tokens_per_second
                await asyncio.sleep(wait_time)

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


# -----------------------------------------------------------------------------
# Timeouts & blocking calls
# -----------------------------------------------------------------------------


class JobTimeoutError(Exception):
    """Raised when a job exceeds its execution timeout."""

    pass


async def with_timeout(coro, timeout_seconds: float | None, error_message: str = "Operation timed out"):
    """
    Await a coroutine, failing with JobTimeoutError after `timeout_seconds`.

    A timeout of None waits indefinitely.
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except TimeoutError:
        raise JobTimeoutError(f"{error_message} (timeout: {timeout_seconds}s)")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run a synchronous call (database I/O) in the default thread pool.

    Awaiting the result can be cancelled, which is what lets a job timeout
    interrupt a job stuck on a slow query. The thread itself runs to
    completion.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
