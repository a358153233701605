"""Tests for TaskExecutor: retry loop, rollback, cancellation, status notifications."""

import asyncio
import random

import pytest

from core.events.topics import TaskTopics
from task_engine.error_handler import ROLLBACK_ERROR, ErrorHandler
from task_engine.errors import DataCorruptionError
from task_engine.executor import CANCELLED_ERROR, TaskExecutor
from task_engine.models import Step, StepKind, StepStatus, Task, TaskCategory, TaskStatus
from task_engine.planner import TaskPlanner
from task_engine.workers import ResearchWorker


def research_with(kind: StepKind, handler):
    """Worker factory that plugs one handler into the research worker."""

    def factory(**kwargs):
        worker = ResearchWorker(**kwargs)
        worker.register_handler(kind, handler)
        return worker

    return factory


class FlakyHandler:
    """Raises the given errors in order, then delegates to ``then`` (or returns a payload)."""

    def __init__(self, errors: list[Exception], then=None) -> None:
        self.errors = list(errors)
        self.then = then
        self.calls = 0

    async def __call__(self, step: Step, task: Task):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        if self.then is not None:
            return await self.then(step, task)
        return {"ok": True}


@pytest.fixture
def planner(ids, clock) -> TaskPlanner:
    return TaskPlanner(id_source=ids, clock=clock)


@pytest.fixture
def research_task(planner: TaskPlanner) -> Task:
    return planner.plan("electric vehicles", "research")


def make_executor(error_handler, sink, clock, kind=None, handler=None) -> TaskExecutor:
    executor = TaskExecutor(error_handler=error_handler, events=sink, clock=clock)
    if kind is not None:
        executor.register_worker(TaskCategory.RESEARCH, research_with(kind, handler))
    return executor


class TestRunOutcomes:
    @pytest.mark.asyncio
    async def test_all_steps_succeed(
        self, research_task: Task, fast_error_handler, sink, clock
    ) -> None:
        executor = make_executor(fast_error_handler, sink, clock)
        outcome = await executor.run(research_task)

        assert outcome.success
        assert outcome.logs
        assert research_task.status == TaskStatus.COMPLETED
        assert research_task.retry_count == 0
        assert research_task.started_at is not None
        assert research_task.completed_at >= research_task.started_at
        assert research_task.result == outcome.result
        assert all(s.status == StepStatus.COMPLETED for s in research_task.steps)

    @pytest.mark.asyncio
    async def test_temporary_failure_retried_until_success(
        self, research_task: Task, fast_error_handler, sink, clock
    ) -> None:
        verify = FlakyHandler(
            [RuntimeError("upstream timeout"), RuntimeError("upstream timeout")],
            then=ResearchWorker(clock=clock).verify,
        )
        executor = make_executor(fast_error_handler, sink, clock, StepKind.VERIFY, verify)

        outcome = await executor.run(research_task)

        assert outcome.success
        assert verify.calls == 3
        assert research_task.status == TaskStatus.COMPLETED
        assert research_task.retry_count == 2
        # the completed search step is kept across retries
        assert len(research_task.metadata["search_results"]) == 1
        statuses = [p["status"] for p in sink.payloads(TaskTopics.STATUS_CHANGED)]
        assert statuses == [
            "in_progress",
            "retrying",
            "in_progress",
            "retrying",
            "in_progress",
            "completed",
        ]

    @pytest.mark.asyncio
    async def test_non_recoverable_fails_after_one_attempt(
        self, research_task: Task, fast_error_handler, sink, clock
    ) -> None:
        search = FlakyHandler([PermissionError("401 Unauthorized")])
        executor = make_executor(fast_error_handler, sink, clock, StepKind.SEARCH, search)

        outcome = await executor.run(research_task)

        assert not outcome.success
        assert outcome.error == "401 Unauthorized"
        assert search.calls == 1
        assert research_task.status == TaskStatus.FAILED
        assert research_task.retry_count == 0
        assert research_task.error == "401 Unauthorized"
        assert research_task.completed_at is not None
        assert "rollback_performed" not in research_task.metadata


class TestRetryLimits:
    @pytest.mark.asyncio
    async def test_worker_calls_bounded_by_max_retries(
        self, research_task: Task, fast_error_handler, sink, clock
    ) -> None:
        search = FlakyHandler([RuntimeError("still flaky")] * 10)
        executor = make_executor(fast_error_handler, sink, clock, StepKind.SEARCH, search)

        outcome = await executor.run(research_task)

        assert not outcome.success
        assert search.calls == research_task.max_retries + 1
        assert research_task.retry_count == research_task.max_retries
        assert research_task.status == TaskStatus.FAILED
        assert research_task.error == "still flaky"

    @pytest.mark.asyncio
    async def test_zero_max_retries(self, ids, clock, fast_error_handler, sink) -> None:
        task = TaskPlanner(id_source=ids, clock=clock, max_retries=0).plan("x", "research")
        search = FlakyHandler([RuntimeError("flaky")])
        executor = make_executor(fast_error_handler, sink, clock, StepKind.SEARCH, search)

        await executor.run(task)

        assert search.calls == 1
        assert task.status == TaskStatus.FAILED


class TestRollback:
    @pytest.mark.asyncio
    async def test_non_recoverable_after_progress_rolls_back(
        self, research_task: Task, fast_error_handler, sink, clock
    ) -> None:
        verify = FlakyHandler([ValueError("invalid source format")])
        executor = make_executor(fast_error_handler, sink, clock, StepKind.VERIFY, verify)

        await executor.run(research_task)

        assert research_task.status == TaskStatus.FAILED
        assert research_task.steps[0].status == StepStatus.FAILED
        assert research_task.steps[0].error == ROLLBACK_ERROR
        assert research_task.metadata["rollback_performed"] is True
        assert "search_results" not in research_task.metadata
        assert research_task.current_step_index == 0

    @pytest.mark.asyncio
    async def test_corruption_rolls_back_and_redoes_all_steps(
        self, research_task: Task, fast_error_handler, sink, clock
    ) -> None:
        worker = ResearchWorker(clock=clock)
        search_calls = 0

        async def search(step: Step, task: Task):
            nonlocal search_calls
            search_calls += 1
            return await worker.search(step, task)

        verify = FlakyHandler([DataCorruptionError("checksum mismatch")], then=worker.verify)

        def factory(**kwargs):
            w = ResearchWorker(**kwargs)
            w.register_handler(StepKind.SEARCH, search)
            w.register_handler(StepKind.VERIFY, verify)
            return w

        executor = TaskExecutor(error_handler=fast_error_handler, events=sink, clock=clock)
        executor.register_worker(TaskCategory.RESEARCH, factory)

        outcome = await executor.run(research_task)

        assert outcome.success
        assert search_calls == 2
        assert research_task.retry_count == 1
        assert research_task.metadata["rollback_performed"] is True
        assert len(research_task.metadata["search_results"]) == 1


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_wakes_backoff(self, research_task: Task, sink, clock) -> None:
        slow_backoff = ErrorHandler(base_delay=10.0, max_delay=30.0, clock=clock, rng=random.Random(1))
        search = FlakyHandler([RuntimeError("flaky")] * 10)
        executor = make_executor(slow_backoff, sink, clock, StepKind.SEARCH, search)

        run = asyncio.create_task(executor.run(research_task))
        while research_task.status != TaskStatus.RETRYING:
            await asyncio.sleep(0.001)

        assert executor.cancel(research_task)
        outcome = await asyncio.wait_for(run, timeout=2.0)

        assert not outcome.success
        assert research_task.status == TaskStatus.CANCELLED
        assert research_task.completed_at is not None
        assert search.calls == 1
        assert sink.payloads(TaskTopics.STATUS_CHANGED)[-1]["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_during_step(self, research_task: Task, fast_error_handler, sink, clock) -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        async def blocking_search(step: Step, task: Task):
            started.set()
            await release.wait()
            return {"ok": True}

        executor = make_executor(fast_error_handler, sink, clock, StepKind.SEARCH, blocking_search)
        run = asyncio.create_task(executor.run(research_task))
        await started.wait()

        assert executor.cancel(research_task)
        assert research_task.steps[0].status == StepStatus.FAILED
        assert research_task.steps[0].error == CANCELLED_ERROR
        release.set()
        outcome = await run

        assert not outcome.success
        assert research_task.status == TaskStatus.CANCELLED
        assert research_task.steps[1].status == StepStatus.PENDING

    def test_cancel_only_active_tasks(self, research_task: Task, fast_error_handler, sink, clock) -> None:
        executor = make_executor(fast_error_handler, sink, clock)
        assert not executor.cancel(research_task)
        research_task.status = TaskStatus.COMPLETED
        assert not executor.cancel(research_task)
        assert research_task.status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_already_cancelled_is_not_run(
        self, research_task: Task, fast_error_handler, sink, clock
    ) -> None:
        research_task.status = TaskStatus.CANCELLED
        outcome = await make_executor(fast_error_handler, sink, clock).run(research_task)
        assert not outcome.success
        assert research_task.status == TaskStatus.CANCELLED
        assert all(s.status == StepStatus.PENDING for s in research_task.steps)


class TestWorkerRegistry:
    @pytest.mark.asyncio
    async def test_unknown_category_fails_without_retry(
        self, research_task: Task, fast_error_handler, sink, clock
    ) -> None:
        executor = TaskExecutor(error_handler=fast_error_handler, workers={}, events=sink, clock=clock)
        outcome = await executor.run(research_task)

        assert not outcome.success
        assert research_task.status == TaskStatus.FAILED
        assert "No worker registered" in research_task.error
        assert research_task.retry_count == 0


class TestVerifySteps:
    def test_inconsistent_steps_reported(self, research_task: Task, clock) -> None:
        executor = TaskExecutor(clock=clock)
        research_task.steps[0].status = StepStatus.COMPLETED
        research_task.steps[0].result = {"ok": True}
        research_task.steps[1].status = StepStatus.COMPLETED
        research_task.steps[2].status = StepStatus.FAILED

        verification = executor.verify_steps(research_task)

        assert not verification.valid
        assert verification.invalid_steps == ["research-2", "research-3"]

    @pytest.mark.asyncio
    async def test_completed_run_is_consistent(
        self, research_task: Task, fast_error_handler, sink, clock
    ) -> None:
        executor = make_executor(fast_error_handler, sink, clock)
        await executor.run(research_task)
        assert executor.verify_steps(research_task).valid
