"""Logging initialization utilities using loguru."""

from __future__ import annotations

import os
from pathlib import Path
import sys

from loguru import logger


def get_log_directory() -> str:
    """Get the default log directory path."""
    return str(Path.home() / ".cache" / "spotshare" / "logs")


def init_logging(log_dir: str | None = None, level: str = "INFO", console: bool = False) -> None:
    """Initialize rotating file logging under the given directory."""
    if log_dir is None:
        log_dir = get_log_directory()
    log_path = Path(os.path.expanduser(os.path.expandvars(log_dir)))
    log_path.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        str(log_path / "spotshare_{time:YYYYMMDD}.log"),
        rotation="10 MB",
        retention="10 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        level=level,
    )
    if console:
        logger.add(sys.stderr, level=level, format="{time:HH:mm:ss} | {level: <7} | {message}")


def init_logging_from_settings(settings: object, console: bool = False) -> None:
    """Read `logging.dir` and `logging.level` from settings and initialize logging."""
    log_dir = settings.get("logging.dir", None)
    level = settings.get("logging.level", "INFO") or "INFO"
    init_logging(log_dir if isinstance(log_dir, str) and log_dir else None, str(level), console)


def find_latest_log_file(log_dir: str | None = None) -> Path | None:
    """Find the latest log file in the specified directory."""
    if log_dir is None:
        log_dir = get_log_directory()

    try:
        log_path = Path(os.path.expanduser(log_dir))
        if not log_path.exists():
            return None

        log_files = list(log_path.glob("spotshare_*.log"))
        if not log_files:
            return None

        return max(log_files, key=lambda p: p.stat().st_mtime)
    except (OSError, ValueError):
        return None
