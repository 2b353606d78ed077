# src/logging/handlers.py — v1
"""File rotation handler for log files.

Log files are split per calendar month (``rcpsync_2025-07.log``) and rotated
by size inside a month.
"""

from __future__ import annotations

import re
from datetime import date
from logging.handlers import RotatingFileHandler
from pathlib import Path


def _parse_size(size_str: str) -> int:
    """Parse size string like '10MB' into bytes.

    Supported suffixes: KB, MB, GB (case-insensitive).
    """
    match = re.match(r"^(\d+)\s*(KB|MB|GB)$", size_str.strip(), re.IGNORECASE)
    if not match:
        raise ValueError(f"Invalid size format: {size_str!r}. Use e.g. '10MB'.")
    value = int(match.group(1))
    unit = match.group(2).upper()
    multipliers = {"KB": 1024, "MB": 1024**2, "GB": 1024**3}
    return value * multipliers[unit]


def monthly_log_path(log_file: str | Path, today: date | None = None) -> Path:
    """Insert a ``_YYYY-MM`` suffix before the extension of *log_file*."""
    path = Path(log_file).expanduser()
    day = today or date.today()
    return path.with_name(f"{path.stem}_{day:%Y-%m}{path.suffix}")


def create_rotating_handler(
    log_file: str | Path,
    rotation: str = "10MB",
    retention: int = 12,
    today: date | None = None,
) -> RotatingFileHandler:
    """Create a size-rotating handler writing to this month's log file.

    Args:
        log_file: Base path of the log file; the month is appended to its stem.
        rotation: Max file size before rotation (e.g. "10MB").
        retention: Number of backup files to keep.
        today: Date used for the monthly suffix (defaults to today).

    Returns:
        Configured RotatingFileHandler.
    """
    path = monthly_log_path(log_file, today)
    path.parent.mkdir(parents=True, exist_ok=True)

    return RotatingFileHandler(
        filename=str(path),
        maxBytes=_parse_size(rotation),
        backupCount=retention,
        encoding="utf-8",
    )
