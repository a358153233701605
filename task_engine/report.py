"""Report generation: Task snapshot -> Report with metrics, conclusion and recommendations."""

from typing import Any

from task_engine.interfaces import Clock, SystemClock
from task_engine.models import (
    LogEntry,
    LogLevel,
    Report,
    ReportMetrics,
    Step,
    StepStatus,
    Task,
    TaskCategory,
    TaskStatus,
)

SLOW_RATIO = 1.5
FAST_RATIO = 0.5
LOW_SUCCESS_RATE = 0.5

_WORKER_NAMES = {
    TaskCategory.RESEARCH: "research",
    TaskCategory.ANALYSIS: "analysis",
    TaskCategory.CREATION: "creation",
}


def format_duration(seconds: float) -> str:
    """850ms, 2.35s, 1m 5s."""
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, rest = divmod(int(seconds), 60)
    return f"{minutes}m {rest}s"


def _pct(rate: float) -> int:
    return round(rate * 100)


class ReportGenerator:
    """Pure projection of a task. The clock is only read for tasks still running."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def generate(self, task: Task, logs: list[LogEntry] | None = None) -> Report:
        completed = task.steps_with_status(StepStatus.COMPLETED)
        failed = task.steps_with_status(StepStatus.FAILED)
        duration = self._total_duration(task)
        success_rate = self._success_rate(task)
        retry_rate = task.retry_count / (task.retry_count + 1) if task.retry_count > 0 else 0.0
        return Report(
            task_id=task.id,
            category=task.category,
            status=task.status,
            created_at=task.created_at,
            started_at=task.started_at,
            completed_at=task.completed_at,
            duration=duration,
            steps_completed=len(completed),
            steps_total=len(task.steps),
            steps_failed=len(failed),
            retry_count=task.retry_count,
            logs=list(logs) if logs else self._logs_from_steps(task.steps),
            result=task.result,
            error=task.error,
            conclusion=self._conclusion(task, completed, failed, success_rate, duration),
            metrics=ReportMetrics(
                total_duration=duration,
                average_step_duration=self._average_step_duration(task),
                success_rate=success_rate,
                retry_rate=retry_rate,
            ),
            recommendations=self._recommendations(task, completed, failed, success_rate),
        )

    def _total_duration(self, task: Task) -> float:
        if task.started_at is None:
            return 0.0
        end = task.completed_at if task.completed_at is not None else self._clock.now()
        return max(0.0, end - task.started_at)

    @staticmethod
    def _average_step_duration(task: Task) -> float:
        durations = [s.duration for s in task.steps if s.duration is not None]
        if not durations:
            return 0.0
        return sum(durations) / len(durations)

    @staticmethod
    def _success_rate(task: Task) -> float:
        if not task.steps:
            return 0.0
        return len(task.steps_with_status(StepStatus.COMPLETED)) / len(task.steps)

    @staticmethod
    def _logs_from_steps(steps: list[Step]) -> list[LogEntry]:
        logs: list[LogEntry] = []
        for step in steps:
            if step.started_at is not None:
                logs.append(
                    LogEntry(step.started_at, LogLevel.INFO, f"Started: {step.name}", step.id)
                )
            if step.completed_at is not None:
                if step.status == StepStatus.COMPLETED:
                    logs.append(
                        LogEntry(
                            step.completed_at, LogLevel.SUCCESS, f"Completed: {step.name}", step.id
                        )
                    )
                else:
                    logs.append(
                        LogEntry(
                            step.completed_at,
                            LogLevel.ERROR,
                            f"Failed: {step.name} - {step.error or 'unknown error'}",
                            step.id,
                        )
                    )
        logs.sort(key=lambda e: e.timestamp)
        return logs

    def _recommendations(
        self, task: Task, completed: list[Step], failed: list[Step], success_rate: float
    ) -> list[str]:
        recs: list[str] = []
        if failed:
            recs.append(f"{len(failed)} step(s) failed. Check the errors and consider a retry.")
        if task.retry_count > 0:
            recs.append(
                f"The task needed {task.retry_count} retry(s). This may point to stability issues."
            )
        if task.estimated_duration and task.started_at is not None and task.completed_at is not None:
            ratio = (task.completed_at - task.started_at) / task.estimated_duration
            if ratio > SLOW_RATIO:
                recs.append(
                    f"The task took {_pct(ratio)}% of the estimated time. Optimization recommended."
                )
            elif ratio < FAST_RATIO:
                recs.append("The task finished faster than estimated. The estimate can be adjusted.")
        if success_rate < LOW_SUCCESS_RATE:
            recs.append(
                f"Low success rate ({_pct(success_rate)}%). Reviewing the plan is recommended."
            )
        if task.steps and len(completed) == len(task.steps) and task.retry_count == 0:
            recs.append("Task completed without retries. Optimal performance.")
        return recs

    def _conclusion(
        self,
        task: Task,
        completed: list[Step],
        failed: list[Step],
        success_rate: float,
        duration: float,
    ) -> str:
        worker = _WORKER_NAMES.get(task.category, "autonomous")
        full = task.status == TaskStatus.COMPLETED and success_rate == 1
        partial = task.status == TaskStatus.COMPLETED and success_rate > 0.5

        parts = [
            "## Execution summary\n\n",
            f'The task "{task.description}" was run by the {worker} agent.\n\n',
        ]
        if full:
            parts.append(
                f"✅ **Full success**: all {len(completed)} steps completed successfully.\n\n"
            )
        elif partial:
            parts.append(
                f"✅ **Partial success**: {len(completed)} of {len(task.steps)} steps completed "
                f"({_pct(success_rate)}% success).\n\n"
            )
        elif task.status == TaskStatus.FAILED:
            parts.append(
                f"❌ **Failure**: the task could not be completed. {len(failed)} step(s) failed.\n\n"
            )
        else:
            parts.append(f"⚠️ **Status**: {task.status}\n\n")

        if task.result:
            parts.append("### Results\n\n")
            parts.append(self._result_highlights(task.result))

        parts.append("### Performance\n\n")
        parts.append(f"- **Total duration**: {format_duration(duration)}\n")
        parts.append(f"- **Success rate**: {_pct(success_rate)}%\n")
        if task.retry_count > 0:
            parts.append(f"- **Retries**: {task.retry_count}\n")
        parts.append("\n")

        if full:
            parts.append("**Synthesis**: the task ran successfully and every objective was met.")
        elif partial:
            parts.append(
                "**Synthesis**: the task mostly succeeded. Some steps needed adjustments, "
                "but the main objectives were met."
            )
        elif task.status == TaskStatus.FAILED:
            parts.append(
                "**Synthesis**: the task could not be completed. Errors occurred during "
                "execution; see the logs for details."
            )
        else:
            parts.append("**Synthesis**: the task is still running or was interrupted.")
        return "".join(parts)

    @staticmethod
    def _result_highlights(result: Any) -> str:
        if not isinstance(result, dict):
            return f"{result}\n\n"
        if result.get("summary"):
            return f"{result['summary']}\n\n"
        lines = []
        if "search_results" in result:
            lines.append(f"- {len(result['search_results'] or [])} search source(s) analysed\n")
        if "extracted_data" in result:
            lines.append(f"- {len(result['extracted_data'] or [])} data point(s) extracted\n")
        if "content" in result:
            lines.append(f"- Generated content: {len(result['content'] or [])} item(s)\n")
        if result.get("final_content"):
            lines.append("- Final content produced\n")
        return "".join(lines) + "\n"

    @staticmethod
    def summarize(report: Report) -> str:
        """Plain-text summary for logs and the CLI."""
        lines = [
            f"=== Execution report - task {report.task_id} ===",
            f"Category: {report.category}",
            f"Status: {report.status}",
            f"Total duration: {format_duration(report.duration or 0.0)}",
            f"Steps: {report.steps_completed}/{report.steps_total} completed",
            f"Success rate: {_pct(report.metrics.success_rate)}%",
        ]
        if report.retry_count > 0:
            lines.append(f"Retries: {report.retry_count}")
        if report.error:
            lines.append(f"Error: {report.error}")
        if report.recommendations:
            lines.append("\nRecommendations:")
            lines.extend(f"  {i}. {rec}" for i, rec in enumerate(report.recommendations, start=1))
        return "\n".join(lines)
