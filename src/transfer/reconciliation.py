# src/transfer/reconciliation.py — v1
"""Transfer passes that converge the remote server on the batch's audit rows.

Each pass selects the rows of the given document types that were never
transferred or whose last transfer failed, and pushes them through the
TransferEngine. Passes stop early once nothing is left.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable

from pydantic import BaseModel

from rcpsync.audit.models import (
    REPORT_DOCUMENT_TYPE,
    CopyStatus,
    FileTransferRecord,
    TransferStatus,
)
from rcpsync.logging.context import set_document_context
from rcpsync.throttle.limiter import BoundedLimiter

if TYPE_CHECKING:
    from rcpsync.audit.store import AuditStore
    from rcpsync.transfer.base_remote_client import BaseRemoteClient
    from rcpsync.transfer.engine import TransferEngine

logger = logging.getLogger(__name__)

# Maps an audit row to (local path, remote subdirectory).
Resolver = Callable[[FileTransferRecord], tuple[Path, str]]


class ReconciliationResult(BaseModel):
    passes: int = 0
    remaining_failed: int = 0


class ReconciliationLoop:
    """Bounded number of transfer passes over one set of document types."""

    def __init__(
        self,
        store: AuditStore,
        engine: TransferEngine,
        name: str,
        concurrency: int = 5,
        max_passes: int = 3,
    ) -> None:
        self._store = store
        self._engine = engine
        self._name = name
        self._concurrency = concurrency
        self._max_passes = max_passes

    async def run(
        self,
        client: BaseRemoteClient,
        batch_id: str,
        document_types: Iterable[str],
        resolve: Resolver,
    ) -> ReconciliationResult:
        types = tuple(document_types)
        result = ReconciliationResult()

        for pass_number in range(1, self._max_passes + 1):
            rows = await self._store.pending_transfers(batch_id, types)
            if not rows:
                logger.info("[%s] nothing left to transfer", self._name)
                break

            result.passes = pass_number
            logger.info(
                "[%s] transfer pass %d/%d: %d file(s)",
                self._name, pass_number, self._max_passes, len(rows),
            )
            limiter = BoundedLimiter(f"{self._name}-sftp-{pass_number}", self._concurrency)
            settled = await limiter.map_settled(
                lambda row: self._transfer_row(client, batch_id, row, resolve), rows
            )
            for row, outcome in zip(rows, settled):
                if not outcome.ok:
                    logger.warning(
                        "[%s] %s failed in pass %d: %s",
                        self._name, row.target_name, pass_number, outcome.error,
                    )

        result.remaining_failed = len(await self._store.pending_transfers(batch_id, types))
        if result.remaining_failed:
            logger.error(
                "[%s] %d file(s) still not transferred after %d pass(es)",
                self._name, result.remaining_failed, result.passes,
            )
        else:
            logger.info("[%s] all files transferred", self._name)
        return result

    async def _transfer_row(
        self,
        client: BaseRemoteClient,
        batch_id: str,
        row: FileTransferRecord,
        resolve: Resolver,
    ) -> str:
        set_document_context(row.target_name)
        local_path, remote_subdir = resolve(row)
        if not local_path.exists():
            logger.warning("Local file missing, not transferred: %s", local_path)
            await self._store.update_transfer_status(
                batch_id, row.target_name, TransferStatus.LOCAL_MISSING.value
            )
            return TransferStatus.LOCAL_MISSING.value
        return await self._engine.transfer(
            client,
            local_path,
            remote_subdir,
            row.target_name,
            batch_id,
            row.product_code,
            row.classification_code,
        )


async def transfer_bulk_report(
    client: BaseRemoteClient,
    engine: TransferEngine,
    store: AuditStore,
    batch_id: str,
    report_path: Path | None,
    remote_subdir: str,
    remaining_failed: int,
) -> str | None:
    """Transfer the summary report once every enabled kind fully transferred.

    Returns:
        The transfer status, or None when the transfer was blocked or there
        is no report.
    """
    if report_path is None:
        logger.info("No summary report to transfer")
        return None
    if remaining_failed > 0:
        logger.warning(
            "Summary report transfer blocked: %d file(s) failed to transfer",
            remaining_failed,
        )
        return None

    await store.upsert_file(
        FileTransferRecord(
            batch_id=batch_id,
            source_dir=str(report_path.parent),
            source_name=report_path.name,
            target_dir=str(report_path.parent),
            target_name=report_path.name,
            document_type=REPORT_DOCUMENT_TYPE,
            copied_at=datetime.now(timezone.utc),
            copy_status=CopyStatus.COPIED.value,
        )
    )
    return await engine.transfer(client, report_path, remote_subdir, report_path.name, batch_id)
