"""Shared fixtures for the async test-suite."""
from __future__ import annotations

import asyncio
import time
from typing import Callable

import pytest

from taskhive.core.message_bus import A2AMessageBus


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def bus() -> A2AMessageBus:
    return A2AMessageBus()


async def _eventually(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def eventually():
    """Poll a predicate until it holds, failing the test after ``timeout`` seconds."""
    return _eventually


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
