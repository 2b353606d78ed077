# src/audit/store.py — v1
"""SQLite-backed audit store: batch records and file-transfer records.

Uses stdlib sqlite3 with one connection per process. The async methods run
their statements synchronously, so each call is atomic with respect to the
event loop; concurrent pipeline tasks never interleave inside a write.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from rcpsync.audit.models import (
    MATERIALIZED_STATUSES,
    BatchCounts,
    BatchRecord,
    FileTransferRecord,
    TransferStatus,
)

logger = logging.getLogger(__name__)


class AuditStoreError(Exception):
    """Raised when the audit database cannot be opened or migrated."""


class BatchNotFoundError(Exception):
    """Raised when a batch identifier supplied for resumption is unknown."""

    def __init__(self, batch_id: str) -> None:
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


# Applied in order; PRAGMA user_version records how many have run.
_MIGRATIONS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS file_transfers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        batch_id TEXT NOT NULL,
        source_dir TEXT,
        source_name TEXT,
        target_dir TEXT,
        target_name TEXT NOT NULL,
        product_code TEXT,
        classification_code TEXT,
        document_type TEXT,
        copied_at TEXT,
        copy_status TEXT,
        transferred_at TEXT,
        transfer_status TEXT
    );
    CREATE TABLE IF NOT EXISTS batches (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        batch_id TEXT NOT NULL UNIQUE,
        started_at TEXT NOT NULL,
        ended_at TEXT,
        duration_seconds INTEGER
    );
    """,
    """
    ALTER TABLE file_transfers ADD COLUMN classification_label TEXT;
    ALTER TABLE file_transfers ADD COLUMN product_name TEXT;
    ALTER TABLE file_transfers ADD COLUMN reference_product TEXT;
    """,
    """
    ALTER TABLE batches ADD COLUMN files_processed INTEGER NOT NULL DEFAULT 0;
    ALTER TABLE batches ADD COLUMN files_r INTEGER NOT NULL DEFAULT 0;
    ALTER TABLE batches ADD COLUMN files_n INTEGER NOT NULL DEFAULT 0;
    ALTER TABLE batches ADD COLUMN files_e INTEGER NOT NULL DEFAULT 0;
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_file_transfers_batch_target
        ON file_transfers(batch_id, target_name);
    CREATE INDEX IF NOT EXISTS idx_file_transfers_batch_type
        ON file_transfers(batch_id, document_type);
    """,
]

_LOCAL_COLUMNS = (
    "source_dir",
    "source_name",
    "target_dir",
    "product_code",
    "classification_code",
    "document_type",
    "classification_label",
    "product_name",
    "reference_product",
    "copied_at",
    "copy_status",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _placeholders(values: Iterable[object]) -> str:
    return ", ".join("?" for _ in values)


class AuditStore:
    """Persistent audit of batches and per-file outcomes."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        try:
            if str(db_path) != ":memory:":
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_path))
        except (OSError, sqlite3.Error) as e:
            raise AuditStoreError(f"Cannot open audit database {db_path}: {e}") from e
        self._conn.row_factory = sqlite3.Row

    # --- Schema ---

    def migrate(self) -> int:
        """Apply pending migrations and return the resulting schema version.

        Raises:
            AuditStoreError: If a migration fails.
        """
        version = self._conn.execute("PRAGMA user_version").fetchone()[0]
        for index in range(version, len(_MIGRATIONS)):
            try:
                with self._conn:
                    for statement in _MIGRATIONS[index].split(";"):
                        if statement.strip():
                            self._conn.execute(statement)
                    self._conn.execute(f"PRAGMA user_version = {index + 1}")
            except sqlite3.Error as e:
                raise AuditStoreError(f"Migration {index + 1} failed: {e}") from e
            logger.debug("Applied audit migration %d", index + 1)
        return len(_MIGRATIONS)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- Batches ---

    async def create_batch(
        self, batch_id: str, started_at: datetime | None = None
    ) -> BatchRecord:
        start = started_at or _now()
        with self._conn:
            cursor = self._conn.execute(
                "INSERT INTO batches (batch_id, started_at) VALUES (?, ?)",
                (batch_id, _iso(start)),
            )
        return BatchRecord(id=cursor.lastrowid, batch_id=batch_id, started_at=start)

    async def get_batch(self, batch_id: str) -> BatchRecord | None:
        row = self._conn.execute(
            "SELECT * FROM batches WHERE batch_id = ?", (batch_id,)
        ).fetchone()
        return BatchRecord(**dict(row)) if row else None

    async def require_batch(self, batch_id: str) -> BatchRecord:
        """Return the batch or raise BatchNotFoundError."""
        batch = await self.get_batch(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    async def latest_batch(self) -> BatchRecord | None:
        row = self._conn.execute(
            "SELECT * FROM batches ORDER BY started_at DESC, id DESC LIMIT 1"
        ).fetchone()
        return BatchRecord(**dict(row)) if row else None

    async def list_batches(self, limit: int = 20) -> list[BatchRecord]:
        rows = self._conn.execute(
            "SELECT * FROM batches ORDER BY started_at DESC, id DESC LIMIT ?", (limit,)
        ).fetchall()
        return [BatchRecord(**dict(r)) for r in rows]

    async def update_batch_counts(self, batch_id: str, counts: BatchCounts) -> None:
        with self._conn:
            self._conn.execute(
                """UPDATE batches
                   SET files_processed = ?, files_r = ?, files_n = ?, files_e = ?
                   WHERE batch_id = ?""",
                (counts.total, counts.r, counts.n, counts.e, batch_id),
            )

    async def finalize_batch(
        self, batch_id: str, ended_at: datetime | None = None
    ) -> bool:
        """Set end time and duration unless already set.

        Returns:
            True if this call finalized the batch, False if it was already
            finalized or does not exist.
        """
        batch = await self.get_batch(batch_id)
        if batch is None or batch.ended_at is not None:
            return False
        end = ended_at or _now()
        start = batch.started_at
        if start.tzinfo is None and end.tzinfo is not None:
            start = start.replace(tzinfo=end.tzinfo)
        duration = round((end - start).total_seconds())
        with self._conn:
            cursor = self._conn.execute(
                """UPDATE batches SET ended_at = ?, duration_seconds = ?
                   WHERE batch_id = ? AND ended_at IS NULL""",
                (_iso(end), duration, batch_id),
            )
        return cursor.rowcount == 1

    # --- File transfer records ---

    async def upsert_file(self, record: FileTransferRecord) -> None:
        """Insert or update the record keyed by (batch_id, target_name).

        Only local-side columns are written; transfer columns are left
        untouched on update.
        """
        values = [
            _iso(v) if isinstance(v, datetime) else v
            for v in (getattr(record, c) for c in _LOCAL_COLUMNS)
        ]
        columns = ("batch_id", "target_name", *_LOCAL_COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _LOCAL_COLUMNS)
        with self._conn:
            self._conn.execute(
                f"""INSERT INTO file_transfers ({", ".join(columns)})
                    VALUES ({_placeholders(columns)})
                    ON CONFLICT(batch_id, target_name) DO UPDATE SET {updates}""",
                (record.batch_id, record.target_name, *values),
            )

    async def update_copy_status(
        self, batch_id: str, target_name: str, status: str
    ) -> None:
        with self._conn:
            self._conn.execute(
                """UPDATE file_transfers SET copy_status = ?, copied_at = ?
                   WHERE batch_id = ? AND target_name = ?""",
                (status, _iso(_now()), batch_id, target_name),
            )

    async def update_transfer_status(
        self,
        batch_id: str,
        target_name: str,
        status: str,
        transferred_at: datetime | None = None,
    ) -> int:
        """Record a transfer outcome; returns the number of rows updated."""
        with self._conn:
            cursor = self._conn.execute(
                """UPDATE file_transfers SET transfer_status = ?, transferred_at = ?
                   WHERE batch_id = ? AND target_name = ?""",
                (status, _iso(transferred_at or _now()), batch_id, target_name),
            )
        return cursor.rowcount

    async def clear_transfer_status(self, batch_id: str, target_name: str) -> None:
        """Forget the transfer outcome so the next pass selects the row again."""
        with self._conn:
            self._conn.execute(
                """UPDATE file_transfers SET transfer_status = NULL, transferred_at = NULL
                   WHERE batch_id = ? AND target_name = ?""",
                (batch_id, target_name),
            )

    async def get_file(self, batch_id: str, target_name: str) -> FileTransferRecord | None:
        row = self._conn.execute(
            "SELECT * FROM file_transfers WHERE batch_id = ? AND target_name = ?",
            (batch_id, target_name),
        ).fetchone()
        return FileTransferRecord(**dict(row)) if row else None

    async def list_files(
        self, batch_id: str, document_types: Iterable[str] | None = None
    ) -> list[FileTransferRecord]:
        sql = "SELECT * FROM file_transfers WHERE batch_id = ?"
        params: list[object] = [batch_id]
        if document_types is not None:
            types = list(document_types)
            sql += f" AND document_type IN ({_placeholders(types)})"
            params.extend(types)
        rows = self._conn.execute(sql + " ORDER BY id", params).fetchall()
        return [FileTransferRecord(**dict(r)) for r in rows]

    async def pending_transfers(
        self, batch_id: str, document_types: Iterable[str]
    ) -> list[FileTransferRecord]:
        """Rows never transferred or whose last transfer failed."""
        types = list(document_types)
        rows = self._conn.execute(
            f"""SELECT * FROM file_transfers
                WHERE batch_id = ? AND document_type IN ({_placeholders(types)})
                  AND (transfer_status IS NULL OR transfer_status = ?)
                ORDER BY id""",
            (batch_id, *types, TransferStatus.FAILED.value),
        ).fetchall()
        return [FileTransferRecord(**dict(r)) for r in rows]

    async def failed_downloads(
        self, batch_id: str, document_types: Iterable[str]
    ) -> list[FileTransferRecord]:
        """Rows whose artifact was not materialized locally."""
        types = list(document_types)
        rows = self._conn.execute(
            f"""SELECT * FROM file_transfers
                WHERE batch_id = ? AND document_type IN ({_placeholders(types)})
                  AND (copy_status IS NULL
                       OR copy_status NOT IN ({_placeholders(MATERIALIZED_STATUSES)}))
                ORDER BY id""",
            (batch_id, *types, *MATERIALIZED_STATUSES),
        ).fetchall()
        return [FileTransferRecord(**dict(r)) for r in rows]

    async def status_counts(self, batch_id: str) -> list[tuple[str, str, str, int]]:
        """Count rows per (document_type, copy_status, transfer_status)."""
        rows = self._conn.execute(
            """SELECT COALESCE(document_type, ''), COALESCE(copy_status, ''),
                      COALESCE(transfer_status, ''), COUNT(*)
               FROM file_transfers WHERE batch_id = ?
               GROUP BY 1, 2, 3 ORDER BY 1, 2, 3""",
            (batch_id,),
        ).fetchall()
        return [(r[0], r[1], r[2], r[3]) for r in rows]
