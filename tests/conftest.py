"""Shared fakes for task engine tests: manual clock, sequential ids, recording event sink."""

import random
from typing import Any

import pytest

from task_engine.error_handler import ErrorHandler


class FakeClock:
    """Manual clock. ``tick`` is added on every read so timestamps stay ordered."""

    def __init__(self, start: float = 1_700_000_000.0, tick: float = 0.0) -> None:
        self.t = start
        self.tick = tick

    def now(self) -> float:
        self.t += self.tick
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


class SequentialIds:
    def __init__(self) -> None:
        self.n = 0

    def new_task_id(self) -> str:
        self.n += 1
        return f"task-{self.n}"


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def publish(
        self,
        topic: str,
        source: str,
        payload: dict[str, Any],
        correlation_id: str | None = None,
    ) -> int:
        self.events.append((topic, payload))
        return len(self.events)

    def payloads(self, topic: str) -> list[dict[str, Any]]:
        return [p for t, p in self.events if t == topic]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(tick=0.01)


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def fast_error_handler(clock: FakeClock) -> ErrorHandler:
    """Millisecond backoff so retry tests finish quickly."""
    return ErrorHandler(
        base_delay=0.001, max_delay=0.01, jitter=0.3, clock=clock, rng=random.Random(7)
    )
