"""Autonomous task engine: plan, queue, execute with retry and rollback, report."""

from task_engine.errors import (
    DataCorruptionError,
    InvalidPlanError,
    OrchestrationError,
    PlanningError,
    StepError,
    TaskCancelledError,
    TaskEngineError,
    UnknownCategoryError,
)
from task_engine.models import Report, Step, StepStatus, Task, TaskCategory, TaskStatus
from task_engine.orchestrator import TaskOrchestrator
from task_engine.service import TaskEngineService, build_orchestrator

__all__ = [
    "DataCorruptionError",
    "InvalidPlanError",
    "OrchestrationError",
    "PlanningError",
    "Report",
    "Step",
    "StepError",
    "StepStatus",
    "Task",
    "TaskCancelledError",
    "TaskCategory",
    "TaskEngineError",
    "TaskEngineService",
    "TaskOrchestrator",
    "TaskStatus",
    "UnknownCategoryError",
    "build_orchestrator",
]
