"""Entry point for the task engine process: bootstrap settings, logging, EventBus, engine."""

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

from core.events import Event, EventBus, SystemTopics
from core.logging_config import setup_logging
from core.settings import get_setting, load_settings
from task_engine.report import ReportGenerator
from task_engine.service import TaskEngineService, build_orchestrator

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

_USAGE = 'usage: python -m core "<description>" [research|analysis|creation|generic] [--verbose]'


def _build_event_bus(settings: dict) -> EventBus:
    eb_cfg = settings.get("event_bus", {})
    return EventBus(
        poll_interval=eb_cfg.get("poll_interval", 5.0),
        batch_size=eb_cfg.get("batch_size", 10),
        max_retries=eb_cfg.get("max_retries", 3),
    )


async def _print_notification(event: Event) -> None:
    print(f"[notify] {event.payload.get('text', '')}")


async def main_async(description: str, category: str = "generic", verbose: bool = False) -> int:
    """Bootstrap, restore, submit one task, wait for the queue to drain, print its report."""
    settings = load_settings()
    setup_logging(_PROJECT_ROOT, settings, console=verbose or None)
    event_bus = _build_event_bus(settings)
    event_bus.subscribe(SystemTopics.USER_NOTIFY, _print_notification, "cli")
    orchestrator = build_orchestrator(settings, _PROJECT_ROOT, events=event_bus)
    service = TaskEngineService(orchestrator)

    await event_bus.start()
    await orchestrator.start()
    try:
        await orchestrator.cleanup_old_tasks(
            float(get_setting(settings, "task_engine.retention_days", 30))
        )
        created = await service.create_task(description, category)
        if created.result == "error":
            print(f"error: {created.message}", file=sys.stderr)
            return 1
        print(f"queued {created.task_id} ({created.category}, {created.steps} steps)")
        await orchestrator.wait_idle()
        report = orchestrator.get_report(created.task_id)
        if report is None:
            print("error: no report produced", file=sys.stderr)
            return 1
        print(ReportGenerator.summarize(report))
        return 0 if report.status == "completed" else 2
    finally:
        await orchestrator.stop()
        await event_bus.stop()


def main() -> None:
    """Synchronous entry: python -m core "<description>" [category]."""
    load_dotenv(_PROJECT_ROOT / ".env")
    verbose = "--verbose" in sys.argv
    args = [a for a in sys.argv[1:] if a != "--verbose"]
    if not args:
        print(_USAGE, file=sys.stderr)
        sys.exit(64)
    category = args[1] if len(args) > 1 else "generic"
    try:
        code = asyncio.run(main_async(args[0], category, verbose))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


__all__ = ["main", "main_async"]
