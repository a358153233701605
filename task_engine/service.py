"""Caller-facing API: wraps TaskOrchestrator in envelopes that never raise."""

import logging
from pathlib import Path
from typing import Any

from core.settings import get_setting
from task_engine.error_handler import ErrorHandler
from task_engine.errors import PlanningError
from task_engine.executor import TaskExecutor
from task_engine.interfaces import Clock, EventSink, SnapshotStore, SystemClock
from task_engine.models import StepStatus, Task, TaskStatus
from task_engine.orchestrator import TaskOrchestrator
from task_engine.planner import TaskPlanner
from task_engine.report import ReportGenerator
from task_engine.results import (
    CancelTaskResult,
    CreateTaskResult,
    ReportResult,
    StatsResult,
    TaskListResult,
    TaskStatusResult,
)
from task_engine.storage import SqliteSnapshotStore
from task_engine.workers import AgentConfig

logger = logging.getLogger(__name__)


def build_orchestrator(
    settings: dict[str, Any],
    project_root: Path,
    events: EventSink | None = None,
    clock: Clock | None = None,
    store: SnapshotStore | None = None,
) -> TaskOrchestrator:
    """Wire planner, error handler, executor and storage from the task_engine settings section."""
    clock = clock or SystemClock()
    max_retries = int(get_setting(settings, "task_engine.max_retries", 3))
    agent_config = AgentConfig(
        timeout=float(get_setting(settings, "task_engine.timeout", 300)),
        retry_delay=float(get_setting(settings, "task_engine.retry.base_delay", 1.0)),
        enable_logging=bool(get_setting(settings, "task_engine.enable_logging", True)),
        step_delay=float(get_setting(settings, "task_engine.step_delay", 0.0)),
        step_timeout=get_setting(settings, "task_engine.step_timeout"),
    )
    error_handler = ErrorHandler(
        base_delay=agent_config.retry_delay,
        max_delay=float(get_setting(settings, "task_engine.retry.max_delay", 30.0)),
        jitter=float(get_setting(settings, "task_engine.retry.jitter", 0.3)),
        clock=clock,
    )
    if store is None and get_setting(settings, "task_engine.enable_persistence", True):
        db_path = get_setting(settings, "task_engine.db_path", "sandbox/data/task_engine.db")
        store = SqliteSnapshotStore(project_root / db_path)
    return TaskOrchestrator(
        planner=TaskPlanner(clock=clock, max_retries=max_retries),
        executor=TaskExecutor(
            error_handler=error_handler, agent_config=agent_config, events=events, clock=clock
        ),
        report_generator=ReportGenerator(clock=clock),
        store=store,
        events=events,
        clock=clock,
        max_concurrent_tasks=int(get_setting(settings, "task_engine.max_concurrent_tasks", 3)),
        resume_interrupted=bool(get_setting(settings, "task_engine.resume_interrupted", True)),
    )


def _status_result(task: Task, message: str = "") -> TaskStatusResult:
    return TaskStatusResult(
        result="success",
        message=message or f"Task is {task.status}",
        task_id=task.id,
        status=str(task.status),
        category=str(task.category),
        description=task.description,
        current_step=task.current_step_index,
        steps_total=len(task.steps),
        steps_completed=len(task.steps_with_status(StepStatus.COMPLETED)),
        retry_count=task.retry_count,
        error=task.error,
        created_at=task.created_at,
        started_at=task.started_at,
        completed_at=task.completed_at,
    )


class TaskEngineService:
    """Envelope API over the orchestrator. Errors become result='error'."""

    def __init__(self, orchestrator: TaskOrchestrator) -> None:
        self.orchestrator = orchestrator

    async def create_task(self, description: str, category: str = "generic") -> CreateTaskResult:
        try:
            task = await self.orchestrator.create_task(description, category)
        except PlanningError as e:
            return CreateTaskResult(result="error", message=str(e))
        except Exception as e:
            logger.exception("task_engine: create_task failed: %s", e)
            return CreateTaskResult(result="error", message=f"Could not create task: {e}")
        return CreateTaskResult(
            result="success",
            message=f"Task queued with {len(task.steps)} step(s)",
            task_id=task.id,
            status=str(task.status),
            category=str(task.category),
            steps=len(task.steps),
            estimated_duration=task.estimated_duration,
        )

    def get_status(self, task_id: str) -> TaskStatusResult:
        task = self.orchestrator.get_task_status(task_id)
        if task is None:
            return TaskStatusResult(result="error", message="Task not found", task_id=task_id)
        return _status_result(task)

    def list_tasks(self, status: str | None = None) -> TaskListResult:
        if status:
            try:
                wanted = TaskStatus(status.strip().lower())
            except ValueError:
                return TaskListResult(result="error", message=f"Unknown status: {status}")
            tasks = self.orchestrator.get_tasks_by_status(wanted)
        else:
            tasks = self.orchestrator.get_all_tasks()
        rows = [_status_result(t) for t in sorted(tasks, key=lambda t: t.created_at)]
        return TaskListResult(
            result="success", message=f"{len(rows)} task(s)", tasks=rows, total=len(rows)
        )

    async def cancel(self, task_id: str) -> CancelTaskResult:
        task = self.orchestrator.get_task_status(task_id)
        if task is None:
            return CancelTaskResult(result="error", message="Task not found", task_id=task_id)
        try:
            cancelled = await self.orchestrator.cancel_task(task_id)
        except Exception as e:
            logger.exception("task_engine: cancel %s failed: %s", task_id, e)
            return CancelTaskResult(result="error", message=str(e), task_id=task_id)
        if not cancelled:
            return CancelTaskResult(
                result="error",
                message=f"Task cannot be cancelled in status {task.status}",
                task_id=task_id,
                status=str(task.status),
            )
        return CancelTaskResult(
            result="success", message="Task cancelled", task_id=task_id, status=str(task.status)
        )

    def get_report(self, task_id: str) -> ReportResult:
        report = self.orchestrator.get_report(task_id)
        if report is None:
            message = (
                "Task not found"
                if self.orchestrator.get_task_status(task_id) is None
                else "Report not available yet"
            )
            return ReportResult(result="error", message=message, task_id=task_id)
        return ReportResult(
            result="success",
            message=f"Report for task in status {report.status}",
            task_id=task_id,
            status=str(report.status),
            summary=ReportGenerator.summarize(report),
            conclusion=report.conclusion,
            recommendations=list(report.recommendations),
            metrics={
                "total_duration": report.metrics.total_duration,
                "average_step_duration": report.metrics.average_step_duration,
                "success_rate": report.metrics.success_rate,
                "retry_rate": report.metrics.retry_rate,
            },
        )

    def get_stats(self) -> StatsResult:
        stats = self.orchestrator.get_stats()
        return StatsResult(
            result="success", message=f"{stats['total']} task(s) tracked", stats=stats
        )

    def get_tools(self) -> list[Any]:
        from task_engine.tools import build_tools

        return build_tools(self)
