"""
Tests for RateLimitedClient: request ceiling, exponential backoff, retry
exhaustion and error passthrough. A fake clock makes waits instant.
"""

from __future__ import annotations

import asyncio

import pytest

from sol_tracker.core.exceptions import (
    RateLimitedError,
    RetriesExhaustedError,
    RpcError,
    TransientRpcError,
)
from sol_tracker.solana_listener.rate_limiter import RateLimitConfig, RateLimitedClient


def scripted(outcomes, calls):
    """Request builder that raises/returns the scripted outcomes in order."""

    def builder():
        async def _call():
            calls.append(len(calls))
            outcome = outcomes[min(len(calls) - 1, len(outcomes) - 1)]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        return _call()

    return builder


@pytest.mark.asyncio
async def test_ceiling_holds_over_any_one_second_window(clock):
    """At 2 req/s no half-open one-second window sees more than 2 dispatches."""
    limiter = RateLimitedClient(RateLimitConfig(requests_per_second=2.0), sleep=clock.sleep, clock=clock)
    dispatched: list[float] = []

    async def record():
        dispatched.append(clock())
        return "ok"

    for _ in range(10):
        assert await limiter.send(record) == "ok"

    for t in dispatched:
        in_window = [u for u in dispatched if t <= u < t + 1.0]
        assert len(in_window) <= 2
    assert dispatched[-1] - dispatched[0] == pytest.approx(4.5)
    assert limiter.stats.dispatched == 10


@pytest.mark.asyncio
async def test_concurrent_callers_are_serialized_in_order(clock):
    limiter = RateLimitedClient(RateLimitConfig(requests_per_second=1.0), sleep=clock.sleep, clock=clock)
    order: list[int] = []
    times: list[float] = []

    def job(i):
        async def _call():
            order.append(i)
            times.append(clock())
            return i

        return _call

    results = await asyncio.gather(*(limiter.send(job(i)) for i in range(4)))
    assert results == [0, 1, 2, 3]
    assert order == [0, 1, 2, 3]
    assert all(b - a >= 1.0 for a, b in zip(times, times[1:]))


@pytest.mark.asyncio
async def test_rate_limited_request_is_retried_with_exponential_backoff(clock):
    cfg = RateLimitConfig(requests_per_second=1000.0, max_retries=5, initial_backoff_sec=1.0, max_backoff_sec=60.0)
    limiter = RateLimitedClient(cfg, sleep=clock.sleep, clock=clock)
    calls: list[int] = []
    result = await limiter.send(scripted([RateLimitedError(), RateLimitedError(), "done"], calls))
    assert result == "done"
    assert len(calls) == 3
    assert clock.sleeps == [1.0, 2.0]
    assert limiter.consecutive_errors == 0
    assert limiter.stats.retries == 2
    assert limiter.last_failure_at is not None


@pytest.mark.asyncio
async def test_backoff_is_capped_and_honours_retry_after(clock):
    cfg = RateLimitConfig(requests_per_second=1000.0, max_retries=5, initial_backoff_sec=1.0, max_backoff_sec=3.0)
    limiter = RateLimitedClient(cfg, sleep=clock.sleep, clock=clock)
    calls: list[int] = []
    outcomes = [RateLimitedError(), RateLimitedError(), RateLimitedError(), RateLimitedError(retry_after=10.0), "ok"]
    await limiter.send(scripted(outcomes, calls))
    assert clock.sleeps == [1.0, 2.0, 3.0, 10.0]


@pytest.mark.asyncio
async def test_retries_exhausted_raises(clock):
    cfg = RateLimitConfig(requests_per_second=1000.0, max_retries=2, initial_backoff_sec=1.0)
    limiter = RateLimitedClient(cfg, sleep=clock.sleep, clock=clock)
    calls: list[int] = []
    with pytest.raises(RetriesExhaustedError) as excinfo:
        await limiter.send(scripted([RateLimitedError(code=-32429)], calls))
    assert excinfo.value.attempts == 3
    assert excinfo.value.code == -32429
    assert len(calls) == 3
    assert limiter.consecutive_errors == 3
    assert limiter.stats.exhausted == 1


@pytest.mark.asyncio
async def test_error_streak_resets_after_success(clock):
    """Exhaustion does not poison the limiter; the next success clears the streak."""
    cfg = RateLimitConfig(requests_per_second=1000.0, max_retries=0, initial_backoff_sec=4.0)
    limiter = RateLimitedClient(cfg, sleep=clock.sleep, clock=clock)
    with pytest.raises(RetriesExhaustedError):
        await limiter.send(scripted([RateLimitedError()], []))
    assert limiter.in_cooldown() is False
    assert await limiter.send(scripted(["ok"], [])) == "ok"
    assert limiter.consecutive_errors == 0


@pytest.mark.asyncio
async def test_transient_errors_retry_unless_disabled(clock):
    cfg = RateLimitConfig(requests_per_second=1000.0, initial_backoff_sec=0.5)
    limiter = RateLimitedClient(cfg, sleep=clock.sleep, clock=clock)
    calls: list[int] = []
    assert await limiter.send(scripted([TransientRpcError("timeout"), "ok"], calls)) == "ok"
    assert len(calls) == 2

    strict = RateLimitedClient(
        RateLimitConfig(requests_per_second=1000.0, retry_transient=False), sleep=clock.sleep, clock=clock
    )
    with pytest.raises(TransientRpcError):
        await strict.send(scripted([TransientRpcError("timeout"), "ok"], []))


@pytest.mark.asyncio
async def test_other_rpc_errors_propagate_without_retry(clock):
    limiter = RateLimitedClient(RateLimitConfig(requests_per_second=1000.0), sleep=clock.sleep, clock=clock)
    calls: list[int] = []
    with pytest.raises(RpcError, match="invalid param"):
        await limiter.send(scripted([RpcError("invalid param", code=-32602), "ok"], calls))
    assert len(calls) == 1
    assert clock.sleeps == []


def test_config_validation():
    with pytest.raises(ValueError):
        RateLimitConfig(requests_per_second=0)
    with pytest.raises(ValueError):
        RateLimitConfig(max_retries=-1)
    assert RateLimitConfig(requests_per_second=0.5).min_interval_sec == 2.0
