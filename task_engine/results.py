"""Tool-facing result envelopes (pydantic). Every envelope carries result + message."""

from typing import Any, Literal

from pydantic import BaseModel, Field

ResultKind = Literal["success", "error"]


class ToolResult(BaseModel):
    """Base envelope: result is 'success' or 'error', message is human-readable."""

    result: ResultKind
    message: str


class CreateTaskResult(ToolResult):
    """Result of create_task."""

    task_id: str | None = None
    status: str | None = None
    category: str | None = None
    steps: int = 0
    estimated_duration: float = 0.0


class TaskStatusResult(ToolResult):
    """Result of get_status; also the row type of list_tasks."""

    task_id: str
    status: str | None = None
    category: str | None = None
    description: str | None = None
    current_step: int = 0
    steps_total: int = 0
    steps_completed: int = 0
    retry_count: int = 0
    error: str | None = None
    created_at: float = 0.0
    started_at: float | None = None
    completed_at: float | None = None


class TaskListResult(ToolResult):
    """Result of list_tasks."""

    tasks: list[TaskStatusResult] = Field(default_factory=list)
    total: int = 0


class CancelTaskResult(ToolResult):
    """Result of cancel."""

    task_id: str
    status: str | None = None


class ReportResult(ToolResult):
    """Result of get_report."""

    task_id: str
    status: str | None = None
    summary: str | None = None
    conclusion: str | None = None
    recommendations: list[str] = Field(default_factory=list)
    metrics: dict[str, float] = Field(default_factory=dict)


class StatsResult(ToolResult):
    """Result of get_stats."""

    stats: dict[str, Any] = Field(default_factory=dict)
