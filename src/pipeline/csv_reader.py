# src/pipeline/csv_reader.py — v1
"""Reader for the monthly centralized-products CSV export."""

from __future__ import annotations

import csv
from datetime import date
from pathlib import Path

DELIMITER = ";"


def monthly_csv_name(today: date) -> str:
    """Name of the CSV expected for the month of ``today``.

    >>> monthly_csv_name(date(2025, 3, 14))
    'RCP_centralises_2025_03.csv'
    """
    return f"RCP_centralises_{today.year:04d}_{today.month:02d}.csv"


def read_delimited(path: Path, delimiter: str = DELIMITER) -> list[dict[str, str]]:
    """Parse a header-first delimited file into one dict per data line.

    Values are trimmed, blank lines skipped and missing trailing cells read
    as empty strings. A header-only file yields an empty list.
    """
    with path.open(encoding="utf-8-sig", newline="") as fh:
        reader = csv.reader(fh, delimiter=delimiter)
        header: list[str] | None = None
        rows: list[dict[str, str]] = []
        for cells in reader:
            if not any(c.strip() for c in cells):
                continue
            if header is None:
                header = [c.strip() for c in cells]
                continue
            rows.append(
                {h: (cells[i].strip() if i < len(cells) else "") for i, h in enumerate(header)}
            )
    return rows
