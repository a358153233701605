"""AgentWorker: category-specific step execution over a task's step list."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from task_engine.errors import StepError, TaskCancelledError
from task_engine.interfaces import Clock, SystemClock
from task_engine.models import (
    LogEntry,
    LogLevel,
    Step,
    StepKind,
    StepStatus,
    Task,
    TaskCategory,
    TaskResult,
    TaskStatus,
)

logger = logging.getLogger(__name__)

StepHandler = Callable[[Step, Task], Awaitable[Any]]

_LOG_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class AgentConfig:
    """Per-worker settings.

    ``timeout`` is advisory and exposed for callers; the engine only enforces
    ``step_timeout`` when it is set. The retry limit lives on ``Task.max_retries``.
    """

    timeout: float = 300.0
    retry_delay: float = 1.0
    enable_logging: bool = True
    step_delay: float = 0.0
    step_timeout: float | None = None


class AgentWorker(ABC):
    """Runs the steps of one task in order. One instance per task run.

    Subclasses provide the handler table and the final result. Handlers only
    touch ``task.metadata`` and return the step result; step status changes go
    through the mark_* helpers.
    """

    category: TaskCategory = TaskCategory.GENERIC
    name: str = "worker"

    def __init__(self, config: AgentConfig | None = None, clock: Clock | None = None) -> None:
        self.config = config or AgentConfig()
        self._clock = clock or SystemClock()
        self._logs: list[LogEntry] = []
        self._handlers: dict[StepKind, StepHandler] = dict(self.build_handlers())

    @abstractmethod
    def build_handlers(self) -> dict[StepKind, StepHandler]:
        """Handler table for the step kinds this worker knows."""

    @abstractmethod
    def build_result(self, task: Task) -> dict[str, Any]:
        """Aggregate step outputs into the task result."""

    def register_handler(self, kind: StepKind, handler: StepHandler) -> None:
        """Plug in or replace the handler for a step kind."""
        self._handlers[kind] = handler

    async def execute(self, task: Task) -> TaskResult:
        """Run every runnable step. Raises StepError on the first failure."""
        started = time.monotonic()
        self.log(f"Starting {self.name}: {task.description}")
        for i, step in enumerate(task.steps):
            if not self.can_execute_step(step, task):
                continue
            if task.status == TaskStatus.CANCELLED:
                raise TaskCancelledError(f"Task {task.id} cancelled")

            self.mark_step_in_progress(task, step, i)
            try:
                result = await self._run_handler(step, task)
            except Exception as e:
                message = str(e) or type(e).__name__
                if step.status == StepStatus.IN_PROGRESS:
                    self.mark_step_failed(step, message)
                if task.status == TaskStatus.CANCELLED:
                    raise TaskCancelledError(f"Task {task.id} cancelled") from e
                raise StepError(step.id, e) from e

            if task.status == TaskStatus.CANCELLED:
                # cancel() already failed this step
                raise TaskCancelledError(f"Task {task.id} cancelled")
            self.mark_step_completed(step, result)

        result = self.build_result(task)
        duration = time.monotonic() - started
        self.log(f"{self.name} finished in {duration:.3f}s", LogLevel.SUCCESS)
        return TaskResult(success=True, result=result, logs=self.get_logs(), duration=duration)

    async def _run_handler(self, step: Step, task: Task) -> Any:
        self.log(f"Running step: {step.name}", step_id=step.id)
        if self.config.step_delay > 0:
            await asyncio.sleep(self.config.step_delay)
        handler = self._handlers.get(step.kind, self.default_handler)
        if self.config.step_timeout is None:
            return await handler(step, task)
        try:
            return await asyncio.wait_for(handler(step, task), timeout=self.config.step_timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Step {step.id} timeout after {self.config.step_timeout}s"
            ) from e

    async def default_handler(self, step: Step, task: Task) -> dict[str, Any]:
        return {
            "step_id": step.id,
            "result": f"Step {step.name} executed",
            "data": step.description,
        }

    def can_execute_step(self, step: Step, task: Task) -> bool:
        if step.status == StepStatus.COMPLETED:
            return False
        if step.status == StepStatus.FAILED and task.retry_count >= task.max_retries:
            return False
        return self.dependencies_met(step, task)

    def dependencies_met(self, step: Step, task: Task) -> bool:
        """Checked on every attempt; earlier retries can change dependency outcomes."""
        for dep_id in step.dependencies:
            dep = task.get_step(dep_id)
            if dep is None or dep.status != StepStatus.COMPLETED:
                self.log(
                    f"Step {step.name} blocked: dependency {dep_id} not completed",
                    LogLevel.WARN,
                    step_id=step.id,
                )
                return False
        return True

    def mark_step_in_progress(self, task: Task, step: Step, index: int) -> None:
        step.status = StepStatus.IN_PROGRESS
        step.started_at = self._clock.now()
        step.error = None
        task.current_step_index = index
        self.log(f"Step started: {step.name}", step_id=step.id)

    def mark_step_completed(self, step: Step, result: Any = None) -> None:
        step.status = StepStatus.COMPLETED
        step.completed_at = self._clock.now()
        step.duration = step.completed_at - (step.started_at or step.completed_at)
        step.result = result
        step.error = None
        self.log(f"Step completed: {step.name}", LogLevel.SUCCESS, step_id=step.id)

    def mark_step_failed(self, step: Step, error: str) -> None:
        step.status = StepStatus.FAILED
        step.completed_at = self._clock.now()
        step.error = error
        self.log(f"Step failed: {step.name} - {error}", LogLevel.ERROR, step_id=step.id)

    def log(
        self,
        message: str,
        level: LogLevel = LogLevel.INFO,
        step_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        if not self.config.enable_logging:
            return
        self._logs.append(
            LogEntry(
                timestamp=self._clock.now(),
                level=level,
                message=message,
                step_id=step_id,
                metadata=metadata,
            )
        )
        logger.log(_LOG_LEVELS[level], "task_engine[%s]: %s", self.name, message)

    def get_logs(self) -> list[LogEntry]:
        return list(self._logs)

    def clear_logs(self) -> None:
        self._logs = []

    def _now(self) -> float:
        return self._clock.now()
