"""Tests for TaskPlanner: templates, ids, estimates, feasibility."""

import re

import pytest

from task_engine.errors import InvalidPlanError, PlanningError
from task_engine.interfaces import TimestampIdSource
from task_engine.models import Step, StepKind, TaskCategory, TaskStatus
from task_engine.planner import TaskPlanner, has_dependency_cycle


@pytest.fixture
def planner(ids, clock) -> TaskPlanner:
    return TaskPlanner(id_source=ids, clock=clock)


class TestPlanTemplates:
    """Per-category step chains."""

    def test_research_plan_is_three_step_chain(self, planner: TaskPlanner) -> None:
        task = planner.plan("quantum computing", "research")
        assert task.category == TaskCategory.RESEARCH
        assert task.status == TaskStatus.PENDING
        assert [s.kind for s in task.steps] == [
            StepKind.SEARCH,
            StepKind.VERIFY,
            StepKind.SYNTHESIZE,
        ]
        assert [s.id for s in task.steps] == ["research-1", "research-2", "research-3"]
        assert task.steps[0].dependencies == []
        assert task.steps[1].dependencies == ["research-1"]
        assert task.steps[2].dependencies == ["research-2"]
        assert "quantum computing" in task.steps[0].description

    def test_analysis_and_creation_have_four_steps(self, planner: TaskPlanner) -> None:
        analysis = planner.plan("sales data", "analysis")
        creation = planner.plan("a blog post", "creation")
        assert [s.kind for s in analysis.steps] == [
            StepKind.EXTRACTION,
            StepKind.PATTERN_DETECTION,
            StepKind.SYNTHESIS,
            StepKind.INSIGHTS,
        ]
        assert [s.kind for s in creation.steps] == [
            StepKind.STRUCTURE,
            StepKind.GENERATION,
            StepKind.VALIDATION,
            StepKind.REVIEW,
        ]

    def test_unknown_category_plans_single_generic_step(self, planner: TaskPlanner) -> None:
        task = planner.plan("water the plants", "gardening")
        assert task.category == TaskCategory.GENERIC
        assert len(task.steps) == 1
        assert task.steps[0].kind == StepKind.GENERIC
        assert task.steps[0].description == "water the plants"

    def test_category_is_case_insensitive(self, planner: TaskPlanner) -> None:
        assert planner.plan("x", "Research").category == TaskCategory.RESEARCH

    @pytest.mark.parametrize("description", ["", "   ", "\n\t"])
    def test_empty_description_rejected(self, planner: TaskPlanner, description: str) -> None:
        with pytest.raises(InvalidPlanError):
            planner.plan(description, "research")

    def test_invalid_plan_is_a_planning_error(self) -> None:
        assert issubclass(InvalidPlanError, PlanningError)

    def test_timestamps_and_retries(self, ids, clock) -> None:
        planner = TaskPlanner(id_source=ids, clock=clock, max_retries=5)
        task = planner.plan("x", "research")
        assert task.max_retries == 5
        assert task.retry_count == 0
        assert task.created_at > 0
        assert task.started_at is None


class TestTaskIds:
    def test_ids_are_unique(self, planner: TaskPlanner) -> None:
        ids = {planner.plan("x", "generic").id for _ in range(20)}
        assert len(ids) == 20

    def test_timestamp_id_format(self, clock) -> None:
        source = TimestampIdSource(clock)
        generated = {source.new_task_id() for _ in range(200)}
        assert len(generated) == 200
        for task_id in generated:
            assert re.fullmatch(r"task-\d+-[0-9a-f]{9}", task_id)


class TestEstimateDuration:
    def test_dependency_multiplier(self, planner: TaskPlanner) -> None:
        research = planner.plan("x", "research")
        # 1.0 for the root step, 1.2 for each dependent one
        assert research.estimated_duration == pytest.approx(3.4)
        assert TaskPlanner.estimate_duration(research.steps) == pytest.approx(3.4)

    def test_single_step(self, planner: TaskPlanner) -> None:
        assert planner.plan("x", "generic").estimated_duration == pytest.approx(1.0)


class TestFeasibility:
    @pytest.mark.parametrize("category", ["research", "analysis", "creation", "other"])
    def test_planner_output_is_feasible(self, planner: TaskPlanner, category: str) -> None:
        task = planner.plan("some work", category)
        assert planner.validate_feasibility(task).feasible
        assert not has_dependency_cycle(task.steps)

    def test_no_steps(self, planner: TaskPlanner) -> None:
        task = planner.plan("x", "research")
        task.steps = []
        result = planner.validate_feasibility(task)
        assert not result.feasible
        assert result.reason == "No steps defined"

    def test_unknown_dependency(self, planner: TaskPlanner) -> None:
        task = planner.plan("x", "research")
        task.steps[1].dependencies = ["missing"]
        result = planner.validate_feasibility(task)
        assert not result.feasible
        assert "missing" in result.reason

    def test_cycle_detected(self, planner: TaskPlanner) -> None:
        task = planner.plan("x", "research")
        task.steps[0].dependencies = ["research-3"]
        result = planner.validate_feasibility(task)
        assert not result.feasible
        assert result.reason == "Circular dependencies detected"

    def test_self_dependency_is_a_cycle(self) -> None:
        assert has_dependency_cycle([Step(id="a", name="a", description="", dependencies=["a"])])

    def test_diamond_is_not_a_cycle(self) -> None:
        steps = [
            Step(id="a", name="a", description=""),
            Step(id="b", name="b", description="", dependencies=["a"]),
            Step(id="c", name="c", description="", dependencies=["a"]),
            Step(id="d", name="d", description="", dependencies=["b", "c"]),
        ]
        assert not has_dependency_cycle(steps)
