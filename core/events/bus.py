"""Pure event transport: publish → pending queue → deliver to subscribers.
Publishers never wait on handlers; a failing handler never affects the publisher."""

import asyncio
import logging
import time
from collections import defaultdict, deque
from typing import Awaitable, Callable

from core.events.models import Event

logger = logging.getLogger(__name__)


class EventBus:
    """In-memory event bus: publish appends to the queue, dispatch loop delivers to handlers."""

    def __init__(
        self,
        poll_interval: float = 5.0,
        batch_size: int = 10,
        max_retries: int = 3,
    ) -> None:
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._max_retries = max_retries
        self._wake = asyncio.Event()
        self._pending: deque[Event] = deque()
        self._subscribers: dict[
            str, list[tuple[Callable[[Event], Awaitable[None]], str]]
        ] = defaultdict(list)
        self._dispatch_task: asyncio.Task[None] | None = None
        self._stopped = False
        self._next_id = 0
        self.dead_letters: list[tuple[Event, str]] = []

    async def publish(
        self,
        topic: str,
        source: str,
        payload: dict,
        correlation_id: str | None = None,
    ) -> int:
        """Queue the event. Returns event id. Fire-and-forget for caller."""
        self._next_id += 1
        self._pending.append(
            Event(
                id=self._next_id,
                topic=topic,
                source=source,
                payload=dict(payload),
                created_at=time.time(),
                correlation_id=correlation_id,
            )
        )
        self._wake.set()
        return self._next_id

    def subscribe(
        self,
        topic: str,
        handler: Callable[[Event], Awaitable[None]],
        subscriber_id: str,
    ) -> None:
        """Register handler in memory. Called at startup."""
        self._subscribers[topic].append((handler, subscriber_id))

    def unsubscribe(self, topic: str, subscriber_id: str) -> None:
        self._subscribers[topic] = [
            (h, sid) for h, sid in self._subscribers.get(topic, []) if sid != subscriber_id
        ]

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def start(self) -> None:
        """Start the dispatch loop as an asyncio Task."""
        self._stopped = False
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        logger.info("EventBus dispatch loop started")

    async def stop(self) -> None:
        """Deliver what is already queued, then stop the dispatch loop."""
        if self._dispatch_task:
            await self.drain()
        self._stopped = True
        self._wake.set()
        if self._dispatch_task:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
            self._dispatch_task = None
        logger.info("EventBus stopped")

    async def drain(self) -> None:
        """Deliver every queued event now, in the caller's task."""
        while self._pending:
            await self._deliver(self._pending.popleft())

    async def _dispatch_loop(self) -> None:
        """Main loop: wait for work, take a batch, deliver to handlers."""
        while not self._stopped:
            try:
                await asyncio.wait_for(
                    self._wake.wait(),
                    timeout=self._poll_interval,
                )
            except asyncio.TimeoutError:
                pass
            self._wake.clear()

            if self._stopped:
                break

            delivered = 0
            while self._pending and delivered < self._batch_size and not self._stopped:
                await self._deliver(self._pending.popleft())
                delivered += 1
            if self._pending:
                self._wake.set()

    async def _deliver(self, event: Event) -> None:
        """Deliver event to handlers; requeue on failure until max_retries, then dead-letter."""
        handlers = self._subscribers.get(event.topic, [])
        if not handlers:
            return

        errors: list[str] = []
        for handler, subscriber_id in handlers:
            try:
                await handler(event)
            except Exception as e:
                errors.append(str(e))
                logger.exception(
                    "EventBus handler %s failed for event %s/%s: %s",
                    subscriber_id,
                    event.topic,
                    event.id,
                    e,
                )

        if not errors:
            return
        error_msg = "; ".join(errors)
        if event.retry_count < self._max_retries:
            self._pending.append(
                Event(
                    id=event.id,
                    topic=event.topic,
                    source=event.source,
                    payload=event.payload,
                    created_at=event.created_at,
                    correlation_id=event.correlation_id,
                    retry_count=event.retry_count + 1,
                )
            )
            logger.warning(
                "EventBus: retrying event %s (attempt %d/%d): %s",
                event.id,
                event.retry_count + 1,
                self._max_retries,
                error_msg,
            )
        else:
            self.dead_letters.append((event, error_msg))
            logger.error(
                "EventBus: dead-lettered event %s after %d retries: %s",
                event.id,
                event.retry_count,
                error_msg,
            )
