"""Task executor: drives one task through its worker with retry, backoff and rollback."""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from core.events.topics import TaskTopics
from task_engine.error_handler import ErrorHandler
from task_engine.errors import TaskCancelledError, UnknownCategoryError
from task_engine.interfaces import Clock, EventSink, NullEventSink, SystemClock
from task_engine.models import (
    ACTIVE_STATUSES,
    StepStatus,
    Task,
    TaskCategory,
    TaskResult,
    TaskStatus,
)
from task_engine.workers import AgentConfig, AgentWorker, WorkerFactory, default_workers

logger = logging.getLogger(__name__)

CANCELLED_ERROR = "task cancelled"
SOURCE = "task_engine"


@dataclass(frozen=True)
class StepVerification:
    valid: bool
    invalid_steps: list[str] = field(default_factory=list)


class TaskExecutor:
    """Runs a task end-to-end. Holds no task references between calls except
    the wake-up events used to cut a backoff wait short on cancel."""

    def __init__(
        self,
        error_handler: ErrorHandler | None = None,
        workers: dict[TaskCategory, WorkerFactory] | None = None,
        agent_config: AgentConfig | None = None,
        events: EventSink | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._error_handler = error_handler or ErrorHandler(clock=self._clock)
        self._workers: dict[TaskCategory, WorkerFactory] = (
            dict(workers) if workers is not None else default_workers()
        )
        self._agent_config = agent_config or AgentConfig()
        self._events = events or NullEventSink()
        self._wakeups: dict[str, asyncio.Event] = {}

    @property
    def error_handler(self) -> ErrorHandler:
        return self._error_handler

    def register_worker(self, category: TaskCategory, factory: WorkerFactory) -> None:
        self._workers[category] = factory

    def _create_worker(self, category: TaskCategory) -> AgentWorker:
        factory = self._workers.get(category)
        if factory is None:
            raise UnknownCategoryError(f"No worker registered for category {category}")
        return factory(config=self._agent_config, clock=self._clock)

    async def run(self, task: Task) -> TaskResult:
        """Execute the task. Never raises for step or worker failures."""
        if task.status == TaskStatus.CANCELLED:
            return TaskResult(success=False, error="Task cancelled")

        try:
            worker = self._create_worker(task.category)
        except UnknownCategoryError as e:
            task.status = TaskStatus.FAILED
            task.error = str(e)
            task.completed_at = self._clock.now()
            await self._emit_status(task)
            logger.warning("task_engine: task %s failed: %s", task.id, e)
            return TaskResult(success=False, error=str(e))

        task.status = TaskStatus.IN_PROGRESS
        task.started_at = self._clock.now()
        await self._emit_status(task)
        self._wakeups[task.id] = asyncio.Event()
        started = time.monotonic()
        try:
            return await self._run_with_retry(task, worker, started)
        finally:
            self._wakeups.pop(task.id, None)

    async def _run_with_retry(
        self, task: Task, worker: AgentWorker, started: float
    ) -> TaskResult:
        while True:
            try:
                outcome = await worker.execute(task)
            except TaskCancelledError:
                return await self._finish_cancelled(task, worker, started)
            except Exception as e:
                if task.status == TaskStatus.CANCELLED:
                    return await self._finish_cancelled(task, worker, started)
                decision = self._error_handler.handle(
                    e,
                    task,
                    {
                        "completed_steps": len(task.steps_with_status(StepStatus.COMPLETED)),
                        "data_corrupted": getattr(e, "data_corrupted", False),
                    },
                )
                if not decision.should_retry:
                    if decision.rollback_needed:
                        self._error_handler.perform_rollback(task)
                    logger.warning(
                        "task_engine: task %s failed (%s, attempt %d): %s",
                        task.id,
                        decision.error_type,
                        task.retry_count + 1,
                        decision.message,
                    )
                    return await self._finish_failed(task, decision.message, worker, started)

                if decision.rollback_needed:
                    # rolled-back steps are failed, so prepare_for_retry re-queues them
                    self._error_handler.perform_rollback(task)
                self._error_handler.prepare_for_retry(task)
                await self._emit_status(task)
                logger.warning(
                    "task_engine: task %s retry %d/%d in %.2fs (%s): %s",
                    task.id,
                    task.retry_count,
                    task.max_retries,
                    decision.retry_delay or 0.0,
                    decision.error_type,
                    decision.message,
                )
                await self._backoff(task.id, decision.retry_delay or 0.0)
                if task.status == TaskStatus.CANCELLED:
                    return await self._finish_cancelled(task, worker, started)
                task.status = TaskStatus.IN_PROGRESS
                await self._emit_status(task)
                continue

            if task.status == TaskStatus.CANCELLED:
                return await self._finish_cancelled(task, worker, started)
            task.status = TaskStatus.COMPLETED
            task.result = outcome.result
            task.error = None
            task.completed_at = self._clock.now()
            verification = self.verify_steps(task)
            if not verification.valid:
                logger.warning(
                    "task_engine: task %s completed with inconsistent steps: %s",
                    task.id,
                    ", ".join(verification.invalid_steps),
                )
            await self._emit_status(task)
            logger.info("task_engine: task %s completed (retries=%d)", task.id, task.retry_count)
            return TaskResult(
                success=True,
                result=outcome.result,
                logs=worker.get_logs(),
                duration=time.monotonic() - started,
            )

    async def _backoff(self, task_id: str, delay: float) -> None:
        """Sleep for the retry delay; cancel() wakes the wait early."""
        wake = self._wakeups.get(task_id)
        if wake is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(wake.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _finish_failed(
        self, task: Task, error: str, worker: AgentWorker, started: float
    ) -> TaskResult:
        task.status = TaskStatus.FAILED
        task.error = error
        task.completed_at = self._clock.now()
        await self._emit_status(task)
        return TaskResult(
            success=False,
            error=error,
            logs=worker.get_logs(),
            duration=time.monotonic() - started,
        )

    async def _finish_cancelled(
        self, task: Task, worker: AgentWorker, started: float
    ) -> TaskResult:
        if task.completed_at is None:
            task.completed_at = self._clock.now()
        await self._emit_status(task)
        logger.info("task_engine: task %s cancelled during execution", task.id)
        return TaskResult(
            success=False,
            error="Task cancelled",
            logs=worker.get_logs(),
            duration=time.monotonic() - started,
        )

    def cancel(self, task: Task) -> bool:
        """Cooperative cancel: flips state now, the worker stops at the next step boundary."""
        if task.status not in ACTIVE_STATUSES:
            return False
        now = self._clock.now()
        task.status = TaskStatus.CANCELLED
        task.completed_at = now
        for step in task.steps:
            if step.status == StepStatus.IN_PROGRESS:
                step.status = StepStatus.FAILED
                step.error = CANCELLED_ERROR
                step.completed_at = now
        wake = self._wakeups.get(task.id)
        if wake is not None:
            wake.set()
        return True

    @staticmethod
    def verify_step(step) -> bool:
        if step.status == StepStatus.COMPLETED and step.result is None:
            return False
        if step.status == StepStatus.FAILED and not step.error:
            return False
        if step.completed_at and step.started_at and step.completed_at < step.started_at:
            return False
        return True

    def verify_steps(self, task: Task) -> StepVerification:
        invalid = [s.id for s in task.steps if not self.verify_step(s)]
        return StepVerification(valid=not invalid, invalid_steps=invalid)

    async def _emit_status(self, task: Task) -> None:
        try:
            await self._events.publish(
                TaskTopics.STATUS_CHANGED,
                SOURCE,
                {"task_id": task.id, "status": str(task.status)},
                correlation_id=task.id,
            )
        except Exception as e:
            logger.exception("task_engine: status notification failed for %s: %s", task.id, e)
