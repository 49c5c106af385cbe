"""
Rate-limited request dispatch for the Solana RPC.

Every remote call funnels through RateLimitedClient.send(): calls are
serialized behind one FIFO lock, spaced at least 1/requests_per_second
apart, and rate-limit responses put the client into a cooldown with
exponential backoff before the same request is re-issued. Errors that are
not rate limits or transient (timeout, 5xx) propagate untouched.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from sol_tracker.core.exceptions import (
    RateLimitedError,
    RetriesExhaustedError,
    TransientRpcError,
)
from sol_tracker.tracker_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_REQUESTS_PER_SECOND = 0.5
DEFAULT_MAX_RETRIES = 5
DEFAULT_INITIAL_BACKOFF_SEC = 2.0
DEFAULT_MAX_BACKOFF_SEC = 60.0


@dataclass(frozen=True)
class RateLimitConfig:
    """Throttle and retry settings for one RPC endpoint."""

    requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND
    max_retries: int = DEFAULT_MAX_RETRIES
    initial_backoff_sec: float = DEFAULT_INITIAL_BACKOFF_SEC
    max_backoff_sec: float = DEFAULT_MAX_BACKOFF_SEC
    retry_transient: bool = True
    """Also retry timeouts and 5xx (TransientRpcError), not only rate limits."""

    def __post_init__(self) -> None:
        if self.requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_backoff_sec < 0 or self.max_backoff_sec < 0:
            raise ValueError("backoff values must be >= 0")

    @property
    def min_interval_sec(self) -> float:
        return 1.0 / self.requests_per_second


@dataclass
class LimiterStats:
    """Counters exposed for heartbeat logs and tests."""

    dispatched: int = 0
    succeeded: int = 0
    rate_limited: int = 0
    transient_errors: int = 0
    retries: int = 0
    exhausted: int = 0


class RateLimitedClient:
    """
    Serializes and throttles RPC calls; retries rate-limited requests.

    `send` takes a zero-arg callable returning an awaitable so a retry
    re-issues the same logical request. The lock is held for the whole
    exchange including backoff waits, so concurrent callers queue in
    submission order and never exceed the ceiling.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or RateLimitConfig()
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_dispatch: float | None = None
        self._consecutive_errors = 0
        self._cooldown_until = 0.0
        self._last_failure_at: float | None = None
        self.stats = LimiterStats()

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    @property
    def last_failure_at(self) -> float | None:
        return self._last_failure_at

    def in_cooldown(self) -> bool:
        return self._clock() < self._cooldown_until

    async def send(self, request_builder: Callable[[], Awaitable[T]]) -> T:
        """Dispatch one logical request under the ceiling; retry on rate limit."""
        async with self._lock:
            retries = 0
            while True:
                await self._throttle()
                try:
                    result = await request_builder()
                except RateLimitedError as e:
                    self.stats.rate_limited += 1
                    retries = await self._backoff_or_raise(e, retries)
                    continue
                except TransientRpcError as e:
                    if not self._config.retry_transient:
                        raise
                    self.stats.transient_errors += 1
                    retries = await self._backoff_or_raise(e, retries)
                    continue
                self._consecutive_errors = 0
                self.stats.succeeded += 1
                return result

    async def _throttle(self) -> None:
        """Wait out the minimum spacing and any active cooldown, then mark dispatch."""
        now = self._clock()
        wait = 0.0
        if self._last_dispatch is not None:
            wait = self._last_dispatch + self._config.min_interval_sec - now
        wait = max(wait, self._cooldown_until - now, 0.0)
        if wait > 0:
            await self._sleep(wait)
        self._last_dispatch = self._clock()
        self.stats.dispatched += 1

    def _next_backoff(self, error: Exception) -> float:
        delay = self._config.initial_backoff_sec * (2 ** self._consecutive_errors)
        delay = min(delay, self._config.max_backoff_sec)
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None and retry_after > delay:
            delay = float(retry_after)
        return delay

    async def _backoff_or_raise(self, error: Exception, retries: int) -> int:
        """Enter cooldown and sleep; raise RetriesExhaustedError past max_retries."""
        now = self._clock()
        self._last_failure_at = now
        if retries >= self._config.max_retries:
            self.stats.exhausted += 1
            self._consecutive_errors += 1
            logger.error(
                "rpc_retries_exhausted",
                attempts=retries + 1,
                consecutive_errors=self._consecutive_errors,
                error=str(error),
            )
            raise RetriesExhaustedError(
                f"giving up after {retries + 1} attempts: {error}",
                attempts=retries + 1,
                code=getattr(error, "code", None),
            ) from error
        delay = self._next_backoff(error)
        self._consecutive_errors += 1
        self._cooldown_until = now + delay
        self.stats.retries += 1
        logger.warning(
            "rpc_rate_limited_backoff",
            attempt=retries + 1,
            max_retries=self._config.max_retries,
            backoff_sec=round(delay, 3),
            consecutive_errors=self._consecutive_errors,
            error=str(error),
        )
        await self._sleep(delay)
        return retries + 1
