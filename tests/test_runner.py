"""Tests for the CLI runner: one task end to end with a temporary project root."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from core import runner
from core.settings import reload_settings


@pytest.fixture(autouse=True)
def isolated_root(tmp_path: Path):
    reload_settings()
    with patch.object(runner, "_PROJECT_ROOT", tmp_path), patch.object(
        runner, "setup_logging", MagicMock()
    ):
        yield tmp_path
    reload_settings()


class TestRunner:
    @pytest.mark.asyncio
    async def test_runs_task_and_prints_report(self, isolated_root: Path, capsys) -> None:
        code = await runner.main_async("deep sea fauna", "research")

        out = capsys.readouterr().out
        assert code == 0
        assert "=== Execution report - task task-" in out
        assert "Status: completed" in out
        assert "[notify] Task completed: deep sea fauna" in out
        assert (isolated_root / "sandbox" / "data" / "task_engine.db").exists()

    @pytest.mark.asyncio
    async def test_empty_description_is_an_error(self, capsys) -> None:
        code = await runner.main_async("   ", "research")
        assert code == 1
        assert "error:" in capsys.readouterr().err

    def test_usage_without_arguments(self) -> None:
        with patch.object(runner.sys, "argv", ["core"]), pytest.raises(SystemExit) as exc_info:
            runner.main()
        assert exc_info.value.code == 64
