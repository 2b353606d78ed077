# src/reports/excel_exporter.py — v1
"""Excel reports of a batch's audit rows (openpyxl).

Two workbooks are produced in the batch root:
  - full:    every audit column plus the derived document type and export directory
  - summary: the eight columns consumed downstream

Both freeze the header row, enable an autofilter and size columns to content.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from rcpsync.audit.models import FileTransferRecord
from rcpsync.core.models import CENTRALIZED_TYPES, DECENTRALIZED_TYPES, DocumentKind
from rcpsync.core.naming import kind_prefix_of

if TYPE_CHECKING:
    from openpyxl.worksheet.worksheet import Worksheet

    from rcpsync.audit.store import AuditStore

logger = logging.getLogger(__name__)

FULL_SHEET = "Full export"
SUMMARY_SHEET = "Summary export"

# Document rows only; the summary report's own audit row is left out.
DOCUMENT_TYPES = DECENTRALIZED_TYPES + CENTRALIZED_TYPES

MIN_COLUMN_WIDTH = 12
COLUMN_PADDING = 2

SUMMARY_COLUMNS: tuple[str, ...] = (
    "target_name",
    "product_code",
    "classification_code",
    "classification_label",
    "product_name",
    "reference_product",
    "document_type",
    "export_directory",
)

UNKNOWN_TYPE = "Unknown"


def full_report_name(stamp: str) -> str:
    return f"transfer_RcpNotice_{stamp}.xlsx"


def summary_report_name(stamp: str) -> str:
    return f"transfer_RcpNotice_summary_{stamp}.xlsx"


def derived_columns(target_name: str | None) -> dict[str, str]:
    """Document type and export directory implied by the filename prefix.

    >>> derived_columns("N_60446911_B05BB01.htm")["document_type"]
    'Notice'
    >>> derived_columns("X_1")["document_type"]
    'Unknown'
    """
    kind = DocumentKind.from_prefix(kind_prefix_of(target_name or ""))
    if kind is None:
        return {"document_type": UNKNOWN_TYPE, "export_directory": ""}
    return {"document_type": kind.value, "export_directory": "\\" + "\\".join(kind.subdir) + "\\"}


def _cell(value: Any) -> Any:
    # Excel cannot store timezone-aware datetimes.
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def full_rows(records: list[FileTransferRecord]) -> list[dict[str, Any]]:
    rows = []
    for record in records:
        row = {k: _cell(v) for k, v in record.model_dump().items()}
        row.update(derived_columns(record.target_name))
        rows.append(row)
    return rows


def summary_rows(records: list[FileTransferRecord]) -> list[dict[str, Any]]:
    return [{c: row.get(c) for c in SUMMARY_COLUMNS} for row in full_rows(records)]


def apply_formatting(ws: Worksheet) -> None:
    """Freeze the header, add an autofilter and fit column widths."""
    ws.freeze_panes = "A2"
    if ws.max_column and ws.max_row:
        ws.auto_filter.ref = f"A1:{get_column_letter(ws.max_column)}{ws.max_row}"
    for index, column in enumerate(ws.iter_cols(), start=1):
        longest = max((len(str(c.value)) for c in column if c.value is not None), default=0)
        ws.column_dimensions[get_column_letter(index)].width = (
            max(longest, MIN_COLUMN_WIDTH) + COLUMN_PADDING
        )


def write_workbook(path: Path, title: str, headers: list[str], rows: list[dict[str, Any]]) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]
    ws.append(headers)
    for row in rows:
        ws.append([row.get(h) for h in headers])
    apply_formatting(ws)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    return path


async def export_full(
    store: AuditStore, batch_id: str, target_dir: Path, stamp: str
) -> Path | None:
    """Write the full report; returns None when the batch has no rows."""
    records = await store.list_files(batch_id, DOCUMENT_TYPES)
    if not records:
        logger.warning("No audit rows for batch %s, full report skipped", batch_id)
        return None
    rows = full_rows(records)
    path = await asyncio.to_thread(
        write_workbook, target_dir / full_report_name(stamp), FULL_SHEET, list(rows[0]), rows
    )
    logger.info("Full report written: %s (%d rows)", path, len(rows))
    return path


async def export_summary(
    store: AuditStore, batch_id: str, target_dir: Path, stamp: str
) -> Path | None:
    """Write the summary report; returns None when the batch has no rows."""
    records = await store.list_files(batch_id, DOCUMENT_TYPES)
    if not records:
        logger.warning("No audit rows for batch %s, summary report skipped", batch_id)
        return None
    rows = summary_rows(records)
    path = await asyncio.to_thread(
        write_workbook,
        target_dir / summary_report_name(stamp),
        SUMMARY_SHEET,
        list(SUMMARY_COLUMNS),
        rows,
    )
    logger.info("Summary report written: %s (%d rows)", path, len(rows))
    return path
