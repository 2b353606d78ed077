# src/materialize/local_copy.py — v1
"""Local materialization: copy a domestic document under its canonical name.

Re-running with the same inputs is a no-op once the target exists.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

from rcpsync.audit.models import CopyStatus, FileTransferRecord
from rcpsync.audit.store import AuditStore
from rcpsync.core.models import DomesticDocument
from rcpsync.core.naming import canonical_filename, extension_of
from rcpsync.materialize.models import MaterializeResult
from rcpsync.throttle.courtesy import NO_DELAY, CourtesyDelay

logger = logging.getLogger(__name__)


class CopyCounter:
    """Coarse progress counter shared by all copy tasks of the process."""

    def __init__(self, every: int = 100) -> None:
        self.every = every
        self.count = 0

    def increment(self, name: str) -> int:
        self.count += 1
        if self.count % self.every == 0:
            logger.info("%d files copied (last: %s)", self.count, name)
        return self.count


copy_counter = CopyCounter()


class LocalMaterializer:
    """Copy domestic SPC/leaflet files from the source share."""

    def __init__(
        self,
        store: AuditStore,
        batch_id: str,
        delay: CourtesyDelay = NO_DELAY,
        counter: CopyCounter | None = None,
    ) -> None:
        self._store = store
        self._batch_id = batch_id
        self._delay = delay
        self._counter = counter or copy_counter

    async def materialize(
        self,
        document: DomesticDocument,
        source_dir: Path,
        target_dir: Path,
        kind_prefix: str | None = None,
    ) -> MaterializeResult:
        """Copy one document and record the outcome.

        Args:
            document: Source row (product code, classification, source filename).
            source_dir: Directory holding the source files.
            target_dir: Directory receiving the canonical copy.
            kind_prefix: Filename prefix; defaults to the document kind's.

        Returns:
            The outcome; its status is one of ``already-present``,
            ``source-not-found``, ``copied`` or ``copy-unverified``.

        Raises:
            OSError: Filesystem errors during the copy; callers catch per item.
        """
        prefix = kind_prefix or document.document_kind.prefix
        name = canonical_filename(
            prefix,
            document.product_code,
            document.classification_code,
            extension_of(document.source_name),
        )
        target = target_dir / name

        if target.exists():
            logger.info("Already present: %s", target)
            status = CopyStatus.ALREADY_PRESENT.value
        else:
            source = source_dir / document.source_name
            if not source.exists():
                logger.warning("Source file not found: %s", source)
                status = CopyStatus.SOURCE_NOT_FOUND.value
            else:
                await asyncio.to_thread(shutil.copy2, source, target)
                self._counter.increment(name)
                await self._delay.wait()
                status = (
                    CopyStatus.COPIED.value if target.exists() else CopyStatus.UNVERIFIED.value
                )

        await self._store.upsert_file(
            FileTransferRecord(
                batch_id=self._batch_id,
                source_dir=str(source_dir),
                source_name=document.source_name,
                target_dir=str(target_dir),
                target_name=name,
                product_code=document.product_code,
                classification_code=document.classification_code,
                document_type=document.kind,
                classification_label=document.classification_label,
                product_name=document.product_name,
                reference_product=document.reference_product,
                copied_at=datetime.now(timezone.utc),
                copy_status=status,
            )
        )
        return MaterializeResult(target_name=name, target_path=target, status=status)
