"""Category workers and the default registry."""

from typing import Callable

from task_engine.models import TaskCategory
from task_engine.workers.analysis import AnalysisWorker
from task_engine.workers.base import AgentConfig, AgentWorker, StepHandler
from task_engine.workers.creation import CreationWorker
from task_engine.workers.generic import GenericWorker
from task_engine.workers.research import ResearchWorker

WorkerFactory = Callable[..., AgentWorker]


def default_workers() -> dict[TaskCategory, WorkerFactory]:
    return {
        TaskCategory.RESEARCH: ResearchWorker,
        TaskCategory.ANALYSIS: AnalysisWorker,
        TaskCategory.CREATION: CreationWorker,
        TaskCategory.GENERIC: GenericWorker,
    }


__all__ = [
    "AgentConfig",
    "AgentWorker",
    "AnalysisWorker",
    "CreationWorker",
    "GenericWorker",
    "ResearchWorker",
    "StepHandler",
    "WorkerFactory",
    "default_workers",
]
