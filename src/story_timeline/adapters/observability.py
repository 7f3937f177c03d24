"""Runtime logging configuration with bounded retention."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_PATH = "work/logs/story_timeline.log"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_CONFIGURED = False


def _int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def _level_env(name: str, default: int) -> int:
    level_name = os.environ.get(name, "").strip().upper()
    level = getattr(logging, level_name, None) if level_name else None
    return level if isinstance(level, int) else default


def configure_runtime_logging(*, force: bool = False) -> Path:
    """Install console + rotating file handlers on the root logger once per process.

    Returns the log file path in use. ``force`` reinstalls handlers, which the
    CLI uses after switching ``STORY_TIMELINE_LOG_PATH`` in tests.
    """
    global _CONFIGURED
    log_path = Path(os.environ.get("STORY_TIMELINE_LOG_PATH", "").strip() or DEFAULT_LOG_PATH)
    if _CONFIGURED and not force:
        return log_path

    level = _level_env("STORY_TIMELINE_LOG_LEVEL", logging.INFO)
    max_bytes = _int_env(
        "STORY_TIMELINE_LOG_MAX_BYTES",
        5 * 1024 * 1024,
        minimum=64 * 1024,
        maximum=100 * 1024 * 1024,
    )
    backup_count = _int_env("STORY_TIMELINE_LOG_BACKUP_COUNT", 10, minimum=1, maximum=120)

    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    file_handler = RotatingFileHandler(
        filename=log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)
    root.addHandler(stream_handler)
    root.addHandler(file_handler)

    logging.getLogger("uvicorn.access").setLevel(
        _level_env("STORY_TIMELINE_ACCESS_LOG_LEVEL", logging.WARNING)
    )
    _CONFIGURED = True
    logging.getLogger(__name__).debug(
        "logging.configured path=%s level=%s max_bytes=%s backups=%s",
        log_path,
        logging.getLevelName(level),
        max_bytes,
        backup_count,
    )
    return log_path
