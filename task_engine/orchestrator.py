"""Task orchestrator: owns tasks and reports, FIFO queue, concurrency cap, persistence."""

import asyncio
import logging
import time
from collections import deque
from typing import Any

from core.events.topics import SystemTopics, TaskTopics
from task_engine.errors import OrchestrationError, PlanningError
from task_engine.executor import TaskExecutor
from task_engine.interfaces import Clock, EventSink, NullEventSink, SnapshotStore, SystemClock
from task_engine.models import (
    ACTIVE_STATUSES,
    LogEntry,
    Report,
    StepStatus,
    Task,
    TaskCategory,
    TaskStatus,
)
from task_engine.planner import TaskPlanner
from task_engine.report import ReportGenerator

logger = logging.getLogger(__name__)

INTERRUPTED_ERROR = "interrupted by restart"
SOURCE = "task_engine"
_SECONDS_PER_DAY = 86400


class TaskOrchestrator:
    """Scheduler facade. Only _process_queue moves tasks from the queue to running.

    Every state change the outside world can see is followed by a snapshot
    save and an event. Persistence and event failures are logged and never
    fail the task.
    """

    def __init__(
        self,
        planner: TaskPlanner | None = None,
        executor: TaskExecutor | None = None,
        report_generator: ReportGenerator | None = None,
        store: SnapshotStore | None = None,
        events: EventSink | None = None,
        clock: Clock | None = None,
        max_concurrent_tasks: int = 3,
        resume_interrupted: bool = True,
    ) -> None:
        if max_concurrent_tasks < 1:
            raise ValueError("max_concurrent_tasks must be at least 1")
        self._clock = clock or SystemClock()
        self._events = events or NullEventSink()
        self._planner = planner or TaskPlanner(clock=self._clock)
        self._executor = executor or TaskExecutor(events=self._events, clock=self._clock)
        self._report_generator = report_generator or ReportGenerator(clock=self._clock)
        self._store = store
        self._max_concurrent = max_concurrent_tasks
        self._resume_interrupted = resume_interrupted
        self._tasks: dict[str, Task] = {}
        self._reports: dict[str, Report] = {}
        self._queue: deque[str] = deque()
        self._running: set[str] = set()
        self._handles: dict[str, asyncio.Task[None]] = {}
        self._started = False
        self._stopping = False

    @property
    def max_concurrent_tasks(self) -> int:
        return self._max_concurrent

    @property
    def running_ids(self) -> frozenset[str]:
        return frozenset(self._running)

    @property
    def queued_ids(self) -> tuple[str, ...]:
        return tuple(self._queue)

    @property
    def executor(self) -> TaskExecutor:
        return self._executor

    async def create_task(self, description: str, category: str | TaskCategory) -> Task:
        """Plan, store and queue a task. Raises PlanningError; nothing is stored then."""
        task = self._planner.plan(description, category)
        feasibility = self._planner.validate_feasibility(task)
        if not feasibility.feasible:
            raise PlanningError(f"Task is not feasible: {feasibility.reason}")

        self._tasks[task.id] = task
        self._queue.append(task.id)
        logger.info(
            "task_engine: created task %s (%s, %d steps)", task.id, task.category, len(task.steps)
        )
        await self._persist()
        await self._publish(
            TaskTopics.CREATED,
            {"task_id": task.id, "category": str(task.category), "description": task.description},
            task.id,
        )
        self._process_queue()
        return task

    def _process_queue(self) -> None:
        """Dispatch queued tasks while below the concurrency cap."""
        if self._stopping:
            return
        while len(self._running) < self._max_concurrent and self._queue:
            task_id = self._queue.popleft()
            task = self._tasks.get(task_id)
            if task is None or task.status != TaskStatus.PENDING:
                continue
            self._running.add(task_id)
            self._handles[task_id] = asyncio.create_task(
                self._execute(task_id), name=f"task-engine-{task_id}"
            )
            logger.debug("task_engine: dispatched %s (running=%d)", task_id, len(self._running))

    async def _execute(self, task_id: str) -> None:
        try:
            await self._run_and_report(task_id)
        finally:
            self._running.discard(task_id)
            self._handles.pop(task_id, None)
            self._process_queue()

    async def _run_and_report(self, task_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is None:
            return
        logs: list[LogEntry] | None = None
        try:
            outcome = await self._executor.run(task)
            logs = outcome.logs or None
        except Exception as e:
            error = OrchestrationError(f"Unexpected failure while running task: {e}")
            logger.exception("task_engine: %s failed outside the executor: %s", task_id, e)
            if not task.is_terminal:
                task.status = TaskStatus.FAILED
                task.error = str(error)
                task.completed_at = self._clock.now()

        # deleted while running
        if task_id not in self._tasks:
            return
        self._reports[task_id] = self._report_generator.generate(task, logs)
        await self._persist()
        await self._publish(
            TaskTopics.UPDATED, {"task_id": task_id, "status": str(task.status)}, task_id
        )
        await self._notify_user(task)

    async def cancel_task(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None:
            return False
        if task.status == TaskStatus.PENDING:
            # queued, or dispatched before the executor picked it up
            if task_id in self._queue:
                self._queue.remove(task_id)
            task.status = TaskStatus.CANCELLED
            task.completed_at = self._clock.now()
            self._reports[task_id] = self._report_generator.generate(task)
            cancelled = True
        else:
            cancelled = self._executor.cancel(task)
        self._running.discard(task_id)

        if cancelled:
            logger.info("task_engine: task %s cancelled", task_id)
            await self._persist()
            await self._publish(
                TaskTopics.UPDATED, {"task_id": task_id, "status": str(task.status)}, task_id
            )
        self._process_queue()
        return cancelled

    def get_task_status(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def get_all_tasks(self) -> list[Task]:
        return list(self._tasks.values())

    def get_tasks_by_status(self, status: TaskStatus) -> list[Task]:
        return [t for t in self._tasks.values() if t.status == status]

    def get_report(self, task_id: str) -> Report | None:
        return self._reports.get(task_id)

    def get_all_reports(self) -> list[Report]:
        return list(self._reports.values())

    async def delete_task(self, task_id: str) -> bool:
        task = self._tasks.pop(task_id, None)
        if task is None:
            return False
        if task.status in ACTIVE_STATUSES:
            self._executor.cancel(task)
        self._reports.pop(task_id, None)
        if task_id in self._queue:
            self._queue.remove(task_id)
        self._running.discard(task_id)
        await self._persist()
        await self._publish(TaskTopics.UPDATED, {"task_id": task_id, "deleted": True}, task_id)
        self._process_queue()
        return True

    def get_stats(self) -> dict[str, Any]:
        tasks = list(self._tasks.values())
        finished = [
            t
            for t in tasks
            if t.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)
            and t.started_at is not None
            and t.completed_at is not None
        ]
        durations = [t.completed_at - t.started_at for t in finished]
        completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
        failed = sum(1 for t in tasks if t.status == TaskStatus.FAILED)
        return {
            "total": len(tasks),
            "pending": sum(1 for t in tasks if t.status == TaskStatus.PENDING),
            "in_progress": sum(1 for t in tasks if t.status in ACTIVE_STATUSES),
            "completed": completed,
            "failed": failed,
            "cancelled": sum(1 for t in tasks if t.status == TaskStatus.CANCELLED),
            "queued": len(self._queue),
            "running": len(self._running),
            "average_duration": sum(durations) / len(durations) if durations else 0.0,
            "success_rate": completed / (completed + failed) if completed + failed else 0.0,
        }

    async def cleanup_old_tasks(self, retention_days: float) -> dict[str, Any]:
        """Delete terminal tasks (and their reports) finished before the retention cutoff."""
        cutoff = self._clock.now() - retention_days * _SECONDS_PER_DAY
        old = [
            t.id
            for t in self._tasks.values()
            if t.is_terminal and t.completed_at is not None and t.completed_at < cutoff
        ]
        for task_id in old:
            self._tasks.pop(task_id, None)
            self._reports.pop(task_id, None)
        if old:
            await self._persist()
            logger.info("task_engine: cleanup removed %d task(s)", len(old))
        return {"deleted": len(old), "cutoff": cutoff, "task_ids": old}

    async def start(self) -> None:
        """Restore the last snapshot and resume or fail interrupted tasks. Idempotent."""
        if self._started:
            return
        self._started = True
        self._stopping = False
        if self._store is None:
            self._process_queue()
            return

        try:
            tasks, reports = await self._store.load()
        except Exception as e:
            logger.exception("task_engine: failed to load snapshot: %s", e)
            tasks, reports = [], []

        for report in reports:
            self._reports.setdefault(report.task_id, report)
        restored = [t for t in tasks if t.id not in self._tasks]
        for task in restored:
            self._tasks[task.id] = task

        interrupted = sorted(
            (t for t in restored if t.status in ACTIVE_STATUSES), key=lambda t: t.created_at
        )
        pending = sorted(
            (t for t in restored if t.status == TaskStatus.PENDING), key=lambda t: t.created_at
        )
        now = self._clock.now()
        resumed: list[str] = []
        for task in interrupted:
            if self._resume_interrupted:
                for step in task.steps:
                    if step.status == StepStatus.IN_PROGRESS:
                        step.reset()
                task.status = TaskStatus.PENDING
                resumed.append(task.id)
            else:
                for step in task.steps:
                    if step.status == StepStatus.IN_PROGRESS:
                        step.status = StepStatus.FAILED
                        step.error = INTERRUPTED_ERROR
                        step.completed_at = now
                task.status = TaskStatus.FAILED
                task.error = INTERRUPTED_ERROR
                task.completed_at = now
                self._reports[task.id] = self._report_generator.generate(task)

        queued = set(self._queue)
        front = [tid for tid in resumed if tid not in queued]
        back = [t.id for t in pending if t.id not in queued]
        self._queue.extendleft(reversed(front))
        self._queue.extend(back)

        if restored:
            logger.info(
                "task_engine: restored %d task(s), %d interrupted, %d queued",
                len(restored),
                len(interrupted),
                len(front) + len(back),
            )
        if interrupted:
            await self._persist()
        self._process_queue()

    async def stop(self, timeout: float | None = None) -> None:
        """Stop dispatching, let in-flight runs finish (cancel them after timeout), persist."""
        self._stopping = True
        handles = list(self._handles.values())
        if handles:
            _, pending = await asyncio.wait(handles, timeout=timeout)
            for handle in pending:
                handle.cancel()
            if pending:
                logger.warning("task_engine: cancelled %d in-flight run(s) on stop", len(pending))
                await asyncio.gather(*pending, return_exceptions=True)
        await self._persist()
        if self._store is not None:
            await self._store.close()
        self._started = False

    async def wait_idle(self) -> None:
        """Return once nothing is queued or running."""
        while True:
            handles = list(self._handles.values())
            if handles:
                await asyncio.wait(handles)
                continue
            if self._queue and not self._stopping:
                self._process_queue()
                if self._handles:
                    continue
            return

    async def _persist(self) -> None:
        if self._store is None:
            return
        started = time.monotonic()
        try:
            await self._store.save(list(self._tasks.values()), list(self._reports.values()))
        except Exception as e:
            logger.exception("task_engine: failed to persist snapshot: %s", e)
            return
        logger.debug(
            "task_engine: snapshot saved (%d tasks) in %.3fs",
            len(self._tasks),
            time.monotonic() - started,
        )

    async def _publish(self, topic: str, payload: dict[str, Any], task_id: str) -> None:
        try:
            await self._events.publish(topic, SOURCE, payload, correlation_id=task_id)
        except Exception as e:
            logger.exception("task_engine: failed to publish %s for %s: %s", topic, task_id, e)

    async def _notify_user(self, task: Task) -> None:
        if task.status == TaskStatus.COMPLETED:
            text = f"Task completed: {task.description}"
        elif task.status == TaskStatus.FAILED:
            text = f"Task failed: {task.description} ({task.error or 'unknown error'})"
        else:
            return
        await self._publish(SystemTopics.USER_NOTIFY, {"text": text, "channel_id": None}, task.id)
