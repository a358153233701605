"""Generic worker for single-step plans of unknown categories."""

from typing import Any

from task_engine.models import StepKind, StepStatus, Task, TaskCategory
from task_engine.workers.base import AgentWorker, StepHandler


class GenericWorker(AgentWorker):
    category = TaskCategory.GENERIC
    name = "generic"

    def build_handlers(self) -> dict[StepKind, StepHandler]:
        return {StepKind.GENERIC: self.default_handler}

    def build_result(self, task: Task) -> dict[str, Any]:
        completed = task.steps_with_status(StepStatus.COMPLETED)
        return {
            "task_id": task.id,
            "description": task.description,
            "steps_completed": len(completed),
            "total_steps": len(task.steps),
            "outputs": [s.result for s in completed],
            "summary": f"Task completed with {len(completed)} successful step(s)",
            "timestamp": self._now(),
        }
