"""Tests for TaskEngineService envelopes, settings wiring and the tool list."""

from pathlib import Path

import pytest

from core.settings import get_default_settings
from task_engine.service import TaskEngineService, build_orchestrator
from task_engine.storage import MemorySnapshotStore, SqliteSnapshotStore


def fast_settings(**task_engine) -> dict:
    settings = get_default_settings()
    settings["task_engine"]["retry"]["base_delay"] = 0.001
    settings["task_engine"]["retry"]["max_delay"] = 0.01
    settings["task_engine"].update(task_engine)
    return settings


@pytest.fixture
def service(tmp_path: Path, sink, clock) -> TaskEngineService:
    orchestrator = build_orchestrator(
        fast_settings(), tmp_path, events=sink, clock=clock, store=MemorySnapshotStore()
    )
    return TaskEngineService(orchestrator)


class TestEnvelopes:
    @pytest.mark.asyncio
    async def test_create_and_report(self, service: TaskEngineService) -> None:
        created = await service.create_task("ocean currents", "research")
        assert created.result == "success"
        assert created.category == "research"
        assert created.steps == 3
        assert created.estimated_duration == pytest.approx(3.4)

        await service.orchestrator.wait_idle()

        status = service.get_status(created.task_id)
        assert status.result == "success"
        assert status.status == "completed"
        assert status.steps_completed == 3

        report = service.get_report(created.task_id)
        assert report.result == "success"
        assert report.metrics["success_rate"] == 1.0
        assert report.summary.startswith("=== Execution report")
        assert "**Full success**" in report.conclusion

    @pytest.mark.asyncio
    async def test_create_rejects_empty_description(self, service: TaskEngineService) -> None:
        created = await service.create_task("  ", "research")
        assert created.result == "error"
        assert created.task_id is None
        assert service.list_tasks().total == 0

    def test_unknown_task(self, service: TaskEngineService) -> None:
        assert service.get_status("nope").result == "error"
        assert service.get_report("nope").message == "Task not found"

    @pytest.mark.asyncio
    async def test_cancel(self, service: TaskEngineService) -> None:
        missing = await service.cancel("nope")
        assert missing.result == "error"

        created = await service.create_task("anything", "generic")
        cancelled = await service.cancel(created.task_id)
        assert cancelled.result == "success"
        assert cancelled.status == "cancelled"

        again = await service.cancel(created.task_id)
        assert again.result == "error"
        await service.orchestrator.wait_idle()

    @pytest.mark.asyncio
    async def test_list_and_stats(self, service: TaskEngineService) -> None:
        await service.create_task("a", "generic")
        await service.create_task("b", "analysis")
        await service.orchestrator.wait_idle()

        listed = service.list_tasks()
        assert listed.total == 2
        assert [t.description for t in listed.tasks] == ["a", "b"]
        assert service.list_tasks("completed").total == 2
        assert service.list_tasks("failed").total == 0
        assert service.list_tasks("bogus").result == "error"

        stats = service.get_stats()
        assert stats.result == "success"
        assert stats.stats["completed"] == 2


class TestBuildOrchestrator:
    def test_settings_applied(self, tmp_path: Path) -> None:
        orchestrator = build_orchestrator(
            fast_settings(max_concurrent_tasks=5, enable_persistence=False), tmp_path
        )
        assert orchestrator.max_concurrent_tasks == 5
        assert orchestrator.executor.error_handler.base_delay == 0.001
        assert orchestrator.executor.error_handler.max_delay == 0.01

    @pytest.mark.asyncio
    async def test_max_retries_setting_reaches_planned_tasks(self, tmp_path: Path) -> None:
        orchestrator = build_orchestrator(
            fast_settings(max_retries=1, enable_persistence=False), tmp_path
        )
        task = await orchestrator.create_task("bounded", "generic")
        await orchestrator.wait_idle()
        assert task.max_retries == 1

    @pytest.mark.asyncio
    async def test_sqlite_store_from_settings(self, tmp_path: Path) -> None:
        orchestrator = build_orchestrator(fast_settings(db_path="db/engine.db"), tmp_path)
        assert isinstance(orchestrator._store, SqliteSnapshotStore)
        await orchestrator.start()
        task = await orchestrator.create_task("persisted", "generic")
        await orchestrator.wait_idle()
        await orchestrator.stop()

        assert (tmp_path / "db" / "engine.db").exists()
        reopened = build_orchestrator(fast_settings(db_path="db/engine.db"), tmp_path)
        await reopened.start()
        assert reopened.get_task_status(task.id).status == "completed"
        assert reopened.get_report(task.id) is not None
        await reopened.stop()


class TestTools:
    def test_tool_names(self, service: TaskEngineService) -> None:
        names = [tool.name for tool in service.get_tools()]
        assert names == [
            "create_autonomous_task",
            "get_task_status",
            "list_tasks",
            "cancel_task",
            "get_task_report",
            "get_task_stats",
        ]
