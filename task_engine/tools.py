"""Task Engine tools: build the assistant's tool list over TaskEngineService."""

from typing import TYPE_CHECKING, Any

from agents import function_tool

from task_engine.results import (
    CancelTaskResult,
    CreateTaskResult,
    ReportResult,
    StatsResult,
    TaskListResult,
    TaskStatusResult,
)

if TYPE_CHECKING:
    from task_engine.service import TaskEngineService


def build_tools(service: "TaskEngineService") -> list[Any]:
    """Build the six task engine tools that delegate to the service."""

    @function_tool
    async def create_autonomous_task(
        description: str, category: str = "generic"
    ) -> CreateTaskResult:
        """Plan and queue an autonomous background task.

        Use when the request needs several steps (research, analysis, content
        creation) and can run while the user keeps talking.

        category: 'research', 'analysis', 'creation' or 'generic'. Unknown
        values run as 'generic'. Returns task_id for tracking.
        """
        return await service.create_task(description, category)

    @function_tool
    async def get_task_status(task_id: str) -> TaskStatusResult:
        """Get current status, step progress and last error of a task."""
        return service.get_status(task_id)

    @function_tool
    async def list_tasks(status: str | None = None) -> TaskListResult:
        """List tasks, optionally filtered by status
        (pending, in_progress, retrying, completed, failed, cancelled)."""
        return service.list_tasks(status)

    @function_tool
    async def cancel_task(task_id: str) -> CancelTaskResult:
        """Cancel a queued or running task.
        Cancellation takes effect between steps; the current step finishes first."""
        return await service.cancel(task_id)

    @function_tool
    async def get_task_report(task_id: str) -> ReportResult:
        """Get the execution report of a finished task: summary, conclusion, recommendations."""
        return service.get_report(task_id)

    @function_tool
    async def get_task_stats() -> StatsResult:
        """Get counters for all tasks: totals per status, queue length, success rate."""
        return service.get_stats()

    return [
        create_autonomous_task,
        get_task_status,
        list_tasks,
        cancel_task,
        get_task_report,
        get_task_stats,
    ]
