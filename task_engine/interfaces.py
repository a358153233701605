"""Collaborator protocols the engine depends on, plus the default implementations."""

import secrets
import time
from typing import Any, Protocol, runtime_checkable

from task_engine.models import Report, Task


@runtime_checkable
class Clock(Protocol):
    """Source of timestamps for created/started/completed fields and backoff."""

    def now(self) -> float:
        """Current time as epoch seconds."""


@runtime_checkable
class IdSource(Protocol):
    """Produces collision-free task ids."""

    def new_task_id(self) -> str: ...


@runtime_checkable
class EventSink(Protocol):
    """Fire-and-forget notifications (created, updated, status changed)."""

    async def publish(
        self,
        topic: str,
        source: str,
        payload: dict,
        correlation_id: str | None = None,
    ) -> int:
        """Queue the event and return its id. Must not wait for delivery."""


@runtime_checkable
class SnapshotStore(Protocol):
    """Last-write-wins snapshot of all tasks and reports."""

    async def save(self, tasks: list[Task], reports: list[Report]) -> None: ...

    async def load(self) -> tuple[list[Task], list[Report]]: ...

    async def close(self) -> None: ...


class SystemClock:
    def now(self) -> float:
        return time.time()


class TimestampIdSource:
    """task-<ms clock>-<random suffix>. Monotonic clock part keeps ids sortable."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def new_task_id(self) -> str:
        millis = int(self._clock.now() * 1000)
        return f"task-{millis}-{secrets.token_hex(5)[:9]}"


class NullEventSink:
    """Drops every event. Used when the engine runs without an event bus."""

    def __init__(self) -> None:
        self._next_id = 0

    async def publish(
        self,
        topic: str,
        source: str,
        payload: dict[str, Any],
        correlation_id: str | None = None,
    ) -> int:
        self._next_id += 1
        return self._next_id
