"""Centralized logging configuration for the task engine process."""

import logging
import logging.handlers
from pathlib import Path
from typing import Any

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _level(name: Any, default: int = logging.INFO) -> int:
    return getattr(logging, str(name).upper(), default)


def _file_handler(project_root: Path, cfg: dict[str, Any], level: int) -> logging.Handler:
    log_path = project_root / cfg.get("file", "sandbox/logs/task_engine.log")
    log_path.parent.mkdir(parents=True, exist_ok=True)
    h = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=int(cfg.get("max_bytes", 10 * 1024 * 1024)),
        backupCount=int(cfg.get("backup_count", 3)),
        encoding="utf-8",
    )
    h.setLevel(level)
    return h


def setup_logging(
    project_root: Path, settings: dict[str, Any], console: bool | None = None
) -> None:
    """Configure the root logger: rotating file handler with optional console output.

    Reads config from settings.get("logging", {}). ``console`` overrides
    ``logging.log_to_console``. ``logging.levels`` maps logger names to level
    names, e.g. to quiet per-step worker output.
    """
    cfg = settings.get("logging", {})
    level = _level(cfg.get("level", "INFO"))
    log_to_console = cfg.get("log_to_console", False) if console is None else console
    formatter = logging.Formatter(_FORMAT, datefmt=_DATEFMT)

    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers[:]:
        root.removeHandler(h)
    handlers = [_file_handler(project_root, cfg, level)]
    if log_to_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        handlers.append(console_handler)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)

    for name, name_level in (cfg.get("levels") or {}).items():
        logging.getLogger(name).setLevel(_level(name_level))
