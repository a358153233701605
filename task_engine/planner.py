"""Task planner: description + category -> Task with an ordered, dependency-aware step list."""

import logging
from dataclasses import dataclass

from task_engine.errors import InvalidPlanError
from task_engine.interfaces import Clock, IdSource, SystemClock, TimestampIdSource
from task_engine.models import Step, StepKind, Task, TaskCategory

logger = logging.getLogger(__name__)

BASE_SECONDS_PER_STEP = 1.0
DEPENDENCY_MULTIPLIER = 1.2
DEFAULT_MAX_RETRIES = 3


@dataclass(frozen=True)
class StepTemplate:
    name: str
    description: str  # may contain {description}
    kind: StepKind


@dataclass(frozen=True)
class Feasibility:
    feasible: bool
    reason: str | None = None


# Each template is authored as a linear chain: step k depends on step k-1.
_TEMPLATES: dict[TaskCategory, tuple[StepTemplate, ...]] = {
    TaskCategory.RESEARCH: (
        StepTemplate("Initial search", "Search for information about: {description}", StepKind.SEARCH),
        StepTemplate("Source verification", "Check the reliability and consistency of the sources found", StepKind.VERIFY),
        StepTemplate("Result synthesis", "Synthesize the collected information", StepKind.SYNTHESIZE),
    ),
    TaskCategory.ANALYSIS: (
        StepTemplate("Information extraction", "Extract the relevant information from: {description}", StepKind.EXTRACTION),
        StepTemplate("Pattern detection", "Identify patterns and trends in the data", StepKind.PATTERN_DETECTION),
        StepTemplate("Synthesis", "Build a structured synthesis of the analysis", StepKind.SYNTHESIS),
        StepTemplate("Insight generation", "Generate insights and recommendations", StepKind.INSIGHTS),
    ),
    TaskCategory.CREATION: (
        StepTemplate("Structure", "Create the structure for: {description}", StepKind.STRUCTURE),
        StepTemplate("Content generation", "Generate content following the structure", StepKind.GENERATION),
        StepTemplate("Content validation", "Validate the quality and coherence of the content", StepKind.VALIDATION),
        StepTemplate("Final review", "Review and improve the content where needed", StepKind.REVIEW),
    ),
}

_GENERIC_TEMPLATE = (StepTemplate("Task execution", "{description}", StepKind.GENERIC),)


class TaskPlanner:
    """Builds tasks from fixed per-category templates and validates them."""

    def __init__(
        self,
        id_source: IdSource | None = None,
        clock: Clock | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self._clock = clock or SystemClock()
        self._ids = id_source or TimestampIdSource(self._clock)
        self._max_retries = max_retries

    def plan(self, description: str, category: str | TaskCategory) -> Task:
        """Create a pending task. Raises InvalidPlanError on an empty description."""
        if not description or not description.strip():
            raise InvalidPlanError("Task description is empty")
        resolved = TaskCategory.parse(category)
        if resolved == TaskCategory.GENERIC and str(category) != TaskCategory.GENERIC:
            logger.info("task_engine: unknown category %r, using generic plan", category)
        steps = self._create_steps(description, resolved)
        return Task(
            id=self._ids.new_task_id(),
            category=resolved,
            description=description,
            steps=steps,
            created_at=self._clock.now(),
            max_retries=self._max_retries,
            estimated_duration=self.estimate_duration(steps),
        )

    def _create_steps(self, description: str, category: TaskCategory) -> list[Step]:
        templates = _TEMPLATES.get(category, _GENERIC_TEMPLATE)
        steps: list[Step] = []
        for i, tpl in enumerate(templates, start=1):
            steps.append(
                Step(
                    id=f"{category}-{i}",
                    name=tpl.name,
                    description=tpl.description.format(description=description),
                    kind=tpl.kind,
                    dependencies=[steps[-1].id] if steps else [],
                )
            )
        return steps

    @staticmethod
    def estimate_duration(steps: list[Step]) -> float:
        """Advisory estimate in seconds. Only used to flag drift in reports."""
        total = 0.0
        for step in steps:
            cost = BASE_SECONDS_PER_STEP
            if step.dependencies:
                cost *= DEPENDENCY_MULTIPLIER
            total += cost
        return total

    def validate_feasibility(self, task: Task) -> Feasibility:
        if not task.description or not task.description.strip():
            return Feasibility(False, "Task description is empty")
        if not task.steps:
            return Feasibility(False, "No steps defined")
        known = {s.id for s in task.steps}
        for step in task.steps:
            missing = [d for d in step.dependencies if d not in known]
            if missing:
                return Feasibility(
                    False, f"Step {step.id} depends on unknown step(s): {', '.join(missing)}"
                )
        if has_dependency_cycle(task.steps):
            return Feasibility(False, "Circular dependencies detected")
        return Feasibility(True)


def has_dependency_cycle(steps: list[Step]) -> bool:
    """DFS with an on-stack set; each step is expanded at most once."""
    by_id = {s.id: s for s in steps}
    visited: set[str] = set()
    on_stack: set[str] = set()

    def visit(step_id: str) -> bool:
        if step_id in on_stack:
            return True
        if step_id in visited:
            return False
        visited.add(step_id)
        on_stack.add(step_id)
        step = by_id.get(step_id)
        if step is not None:
            for dep in step.dependencies:
                if visit(dep):
                    return True
        on_stack.discard(step_id)
        return False

    return any(visit(s.id) for s in steps)
