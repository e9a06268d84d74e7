"""Failure isolation and pacing primitives: circuit breaker, rate limiter, retry."""
from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from taskhive.core.errors import CircuitOpenError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Convert repeated downstream failures into fast-fail errors.

    The breaker opens after ``failure_threshold`` failures, rejects every call
    until ``reset_timeout`` seconds have passed since the last failure, then
    lets trial calls through one at a time. ``half_open_successes`` consecutive
    trial successes close it again; a single trial failure re-opens it.
    """

    def __init__(
        self,
        name: str = "default",
        *,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        half_open_successes: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_successes = half_open_successes
        self._clock = clock
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self._trial_in_flight = False

    async def execute(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``fn`` through the breaker."""
        if self.state is CircuitState.OPEN:
            if self._reset_timeout_elapsed():
                self._transition(CircuitState.HALF_OPEN)
                self.success_count = 0
            else:
                logger.debug("circuit_fast_fail", breaker=self.name, failures=self.failure_count)
                raise CircuitOpenError(f"Circuit breaker {self.name} is open")

        trial = self.state is CircuitState.HALF_OPEN
        if trial:
            if self._trial_in_flight:
                raise CircuitOpenError(f"Circuit breaker {self.name} is half-open, trial in progress")
            self._trial_in_flight = True

        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        else:
            self._on_success()
            return result
        finally:
            if trial:
                self._trial_in_flight = False

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None
        self._trial_in_flight = False

    def get_state(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time,
        }

    def _reset_timeout_elapsed(self) -> bool:
        if self.last_failure_time is None:
            return True
        return self._clock() - self.last_failure_time >= self.reset_timeout

    def _on_success(self) -> None:
        self.failure_count = 0
        if self.state is CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.half_open_successes:
                self.success_count = 0
                self._transition(CircuitState.CLOSED)

    def _on_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()
        if self.state is CircuitState.HALF_OPEN:
            self.success_count = 0
            self._transition(CircuitState.OPEN)
        elif self.state is CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        logger.info(
            "circuit_state_changed",
            breaker=self.name,
            old=self.state.value,
            new=new_state.value,
            failures=self.failure_count,
        )
        self.state = new_state


class RateLimiter:
    """Token bucket refilled in full once per ``window`` seconds."""

    def __init__(
        self,
        max_tokens: int = 100,
        window: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_tokens = max_tokens
        self.window = window
        self._clock = clock
        self._tokens = max_tokens
        self._last_refill = clock()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Take one token, waiting for the next refill if the bucket is empty."""
        async with self._lock:
            self.refill()
            if self._tokens <= 0:
                wait_time = self.window - (self._clock() - self._last_refill)
                logger.debug("rate_limit_wait", seconds=round(max(0.0, wait_time), 3))
                await asyncio.sleep(max(0.0, wait_time))
                self.refill(force=True)
            self._tokens -= 1

    def refill(self, force: bool = False) -> None:
        now = self._clock()
        if force or now - self._last_refill >= self.window:
            self._tokens = self.max_tokens
            self._last_refill = now

    def available_tokens(self) -> int:
        self.refill()
        return self._tokens


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_multiplier: float = 2.0,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """Await ``fn`` up to ``max_retries`` times with exponentially growing pauses.

    The pause before attempt ``n + 1`` is ``initial_delay * backoff_multiplier ** (n - 1)``
    capped at ``max_delay``. The last error is re-raised once attempts run out.
    """

    def _before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "retrying_after_error",
            attempt=retry_state.attempt_number,
            error=str(error),
        )
        if on_retry is not None and error is not None:
            on_retry(retry_state.attempt_number, error)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, max_retries)),
        wait=wait_exponential(multiplier=initial_delay, exp_base=backoff_multiplier, max=max_delay),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_before_sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            result = await fn()
    return result
