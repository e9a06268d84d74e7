"""Tests for the circuit breaker, rate limiter and retry helper."""
from __future__ import annotations

import asyncio
import time

import pytest

from taskhive.core.errors import CircuitOpenError
from taskhive.core.resilience import CircuitBreaker, CircuitState, RateLimiter, retry_with_backoff


async def _boom() -> None:
    raise RuntimeError("boom")


async def _ok() -> str:
    return "ok"


async def _trip(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(RuntimeError):
            await breaker.execute(_boom)


@pytest.mark.anyio
async def test_breaker_opens_after_threshold_and_fails_fast(clock) -> None:
    breaker = CircuitBreaker("svc", failure_threshold=3, reset_timeout=10.0, clock=clock)
    calls = 0

    async def counted() -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("boom")

    for _ in range(3):
        with pytest.raises(RuntimeError):
            await breaker.execute(counted)
    assert breaker.state is CircuitState.OPEN

    clock.advance(9.0)
    with pytest.raises(CircuitOpenError):
        await breaker.execute(counted)
    assert calls == 3


@pytest.mark.anyio
async def test_two_half_open_successes_close_the_breaker(clock) -> None:
    breaker = CircuitBreaker("svc", failure_threshold=3, reset_timeout=10.0, clock=clock)
    await _trip(breaker, 3)

    clock.advance(10.0)
    assert await breaker.execute(_ok) == "ok"
    assert breaker.state is CircuitState.HALF_OPEN
    assert await breaker.execute(_ok) == "ok"
    assert breaker.state is CircuitState.CLOSED
    assert breaker.get_state()["failure_count"] == 0


@pytest.mark.anyio
async def test_half_open_failure_reopens(clock) -> None:
    breaker = CircuitBreaker("svc", failure_threshold=2, reset_timeout=5.0, clock=clock)
    await _trip(breaker, 2)
    clock.advance(5.0)

    with pytest.raises(RuntimeError):
        await breaker.execute(_boom)
    assert breaker.state is CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        await breaker.execute(_ok)


@pytest.mark.anyio
async def test_half_open_admits_a_single_trial(clock) -> None:
    breaker = CircuitBreaker("svc", failure_threshold=1, reset_timeout=1.0, clock=clock)
    await _trip(breaker, 1)
    clock.advance(1.0)
    release = asyncio.Event()

    async def slow() -> int:
        await release.wait()
        return 1

    trial = asyncio.create_task(breaker.execute(slow))
    await asyncio.sleep(0)
    with pytest.raises(CircuitOpenError):
        await breaker.execute(_ok)
    release.set()
    assert await trial == 1


@pytest.mark.anyio
async def test_reset_forces_closed(clock) -> None:
    breaker = CircuitBreaker("svc", failure_threshold=1, clock=clock)
    await _trip(breaker, 1)
    breaker.reset()
    assert breaker.state is CircuitState.CLOSED
    assert await breaker.execute(_ok) == "ok"


@pytest.mark.anyio
async def test_rate_limiter_waits_for_next_window() -> None:
    limiter = RateLimiter(max_tokens=2, window=0.1)
    await limiter.acquire()
    await limiter.acquire()
    assert limiter.available_tokens() == 0

    started = time.monotonic()
    await limiter.acquire()
    assert time.monotonic() - started >= 0.05
    assert limiter.available_tokens() == 1


@pytest.mark.anyio
async def test_rate_limiter_never_overdraws_under_concurrency(clock) -> None:
    limiter = RateLimiter(max_tokens=3, window=60.0, clock=clock)
    granted = 0

    async def take() -> None:
        nonlocal granted
        await limiter.acquire()
        granted += 1

    waiters = [asyncio.create_task(take()) for _ in range(5)]
    await asyncio.sleep(0.05)
    assert granted == 3
    for waiter in waiters:
        waiter.cancel()
    await asyncio.gather(*waiters, return_exceptions=True)


@pytest.mark.anyio
async def test_retry_succeeds_after_transient_failures() -> None:
    attempts = 0
    retries = []

    async def flaky() -> str:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise ConnectionError("transient")
        return "done"

    result = await retry_with_backoff(
        flaky,
        max_retries=3,
        initial_delay=0,
        on_retry=lambda attempt, exc: retries.append(attempt),
    )

    assert result == "done"
    assert attempts == 3
    assert retries == [1, 2]


@pytest.mark.anyio
async def test_retry_reraises_last_error() -> None:
    attempts = 0

    async def always_fails() -> None:
        nonlocal attempts
        attempts += 1
        raise ValueError(f"attempt {attempts}")

    with pytest.raises(ValueError, match="attempt 2"):
        await retry_with_backoff(always_fails, max_retries=2, initial_delay=0)
    assert attempts == 2


@pytest.mark.anyio
async def test_retry_skips_unlisted_errors() -> None:
    attempts = 0

    async def wrong_kind() -> None:
        nonlocal attempts
        attempts += 1
        raise KeyError("nope")

    with pytest.raises(KeyError):
        await retry_with_backoff(wrong_kind, max_retries=5, initial_delay=0, retry_on=(ConnectionError,))
    assert attempts == 1
