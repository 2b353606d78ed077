# src/pipeline/decentralized.py — v1
"""Decentralized pipeline: domestic SPC and leaflet files from the source share.

Each kind is listed from the source, capped, then materialized under a
bounded limiter. One failing document is logged and never cancels its
siblings.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable

from rcpsync.audit.models import CopyStatus
from rcpsync.config.settings import ConfigurationError
from rcpsync.core.models import DECENTRALIZED_TYPES, DocumentKind, DomesticDocument
from rcpsync.logging.context import set_document_context, set_pipeline_context
from rcpsync.materialize.local_copy import LocalMaterializer
from rcpsync.materialize.models import MaterializeResult
from rcpsync.throttle.courtesy import CourtesyDelay
from rcpsync.throttle.limiter import BoundedLimiter

if TYPE_CHECKING:
    from rcpsync.audit.models import FileTransferRecord
    from rcpsync.audit.store import AuditStore
    from rcpsync.config.settings import Settings
    from rcpsync.source.base_source import DocumentSource

logger = logging.getLogger(__name__)


def apply_cap(items: list, cap: int | None) -> list:
    """Keep the first ``cap`` items in source order (all of them if no cap)."""
    return items if cap is None else items[:cap]


class DecentralizedPipeline:
    """Copy domestic documents into ``FR/RCP`` and ``FR/Notices``.

    Args:
        settings: Application settings (switches, cap, concurrency, delays).
        source: Source query collaborator.
        store: Audit store receiving one row per document.
        batch_id: Identifier of the running batch.
        batch_root: Dated root directory of the batch.
    """

    def __init__(
        self,
        settings: Settings,
        source: DocumentSource,
        store: AuditStore,
        batch_id: str,
        batch_root: Path,
        materializer: LocalMaterializer | None = None,
    ) -> None:
        self._settings = settings
        self._source = source
        self._store = store
        self._batch_id = batch_id
        self._batch_root = batch_root
        self._materializer = materializer or LocalMaterializer(
            store,
            batch_id,
            CourtesyDelay(
                settings.decentralized_min_delay_ms, settings.decentralized_max_delay_ms
            ),
        )

    async def run(self) -> list[FileTransferRecord]:
        """Process the enabled kinds and return the batch's domestic audit rows."""
        set_pipeline_context("decentralized")
        if self._settings.source_dir is None:
            raise ConfigurationError("SOURCE_DIR is required for the decentralized pipeline")

        if self._settings.process_spc:
            await self._process_kind(DocumentKind.SPC, self._source.list_spc)
        else:
            logger.info("SPC processing disabled")

        if self._settings.process_leaflet:
            await self._process_kind(DocumentKind.LEAFLET, self._source.list_leaflets)
        else:
            logger.info("Leaflet processing disabled")

        return await self._store.list_files(self._batch_id, DECENTRALIZED_TYPES)

    async def _process_kind(
        self,
        kind: DocumentKind,
        fetch: Callable[[], Awaitable[list[DomesticDocument]]],
    ) -> list[MaterializeResult]:
        documents = apply_cap(await fetch(), self._settings.max_files_to_process)
        target_dir = self._batch_root.joinpath(*kind.subdir)
        logger.info("Processing %d %s documents into %s", len(documents), kind.value, target_dir)

        limiter = BoundedLimiter(f"decentralized-{kind.value}", self._settings.decentralized_concurrency)
        settled = await limiter.map_settled(
            lambda doc: self._process_one(doc, kind, target_dir), documents
        )

        results: list[MaterializeResult] = []
        for document, outcome in zip(documents, settled):
            if outcome.ok and outcome.value is not None:
                results.append(outcome.value)
            else:
                logger.error(
                    "Failed to process %s %s (%s): %s",
                    kind.value, document.product_code, document.source_name, outcome.error,
                )
        copied = sum(1 for r in results if r.status == CopyStatus.COPIED.value)
        logger.info(
            "%s done: %d processed, %d copied, %d failed",
            kind.value, len(results), copied, len(documents) - len(results),
        )
        return results

    async def _process_one(
        self, document: DomesticDocument, kind: DocumentKind, target_dir: Path
    ) -> MaterializeResult:
        set_document_context(document.source_name)
        assert self._settings.source_dir is not None
        return await self._materializer.materialize(
            document, self._settings.source_dir, target_dir, kind.prefix
        )
