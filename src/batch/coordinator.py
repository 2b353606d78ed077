# src/batch/coordinator.py — v1
"""Batch coordinator: one full run, from acquisition to remote delivery.

Lifecycle: created -> running -> finalizing -> closed.
  running:    both acquisition pipelines run concurrently; one failing does
              not stop the other
  finalizing: per-kind counts, Excel reports, transfer passes over one shared
              SFTP connection, then the summary report when nothing failed
  closed:     the batch row receives its end time, whatever happened before

A resumed batch (known ``batch_id``) skips acquisition and directory
creation; counts are recomputed from its audit rows.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from datetime import date, datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, AsyncContextManager, Callable

import httpx

from rcpsync.audit.models import BatchCounts
from rcpsync.audit.store import AuditStoreError, BatchNotFoundError
from rcpsync.batch import layout
from rcpsync.batch.models import BatchState, BatchSummary
from rcpsync.config.settings import ConfigurationError
from rcpsync.core.models import CENTRALIZED_TYPES, DECENTRALIZED_TYPES
from rcpsync.logging.context import set_batch_context, set_pipeline_context
from rcpsync.materialize.remote_download import RemoteMaterializer
from rcpsync.pipeline.centralized import CentralizedPipeline
from rcpsync.pipeline.decentralized import DecentralizedPipeline
from rcpsync.reports.excel_exporter import export_full, export_summary
from rcpsync.source.sql_source import SqlDocumentSource
from rcpsync.throttle.circuit_breaker import RateLimitBreaker
from rcpsync.throttle.courtesy import CourtesyDelay
from rcpsync.throttle.limiter import gather_settled
from rcpsync.throttle.retry import RetryPolicy
from rcpsync.transfer.engine import TransferEngine
from rcpsync.transfer.reconciliation import ReconciliationLoop, transfer_bulk_report
from rcpsync.transfer.sftp_client import SftpRemoteClient

if TYPE_CHECKING:
    from rcpsync.audit.store import AuditStore
    from rcpsync.config.settings import Settings
    from rcpsync.source.base_source import DocumentSource
    from rcpsync.transfer.base_remote_client import BaseRemoteClient

logger = logging.getLogger(__name__)

RemoteConnector = Callable[["Settings"], AsyncContextManager["BaseRemoteClient"]]


class BatchCoordinator:
    """Drive one batch through its lifecycle.

    Args:
        settings: Application settings.
        store: Audit store (opened by the caller, closed by the caller).
        source: Source query collaborator; built from ``source_db_url`` if None.
        http_client: HTTP client for EU downloads; one is opened per run if None.
        connect_remote: Opens the run's remote connection.
        breaker: Rate-limit breaker shared by the run's downloads.
        today: Date selecting the monthly CSV (defaults to today).
    """

    def __init__(
        self,
        settings: Settings,
        store: AuditStore,
        source: DocumentSource | None = None,
        http_client: httpx.AsyncClient | None = None,
        connect_remote: RemoteConnector = SftpRemoteClient.connect,
        breaker: RateLimitBreaker | None = None,
        today: date | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._source = source
        self._http_client = http_client
        self._connect_remote = connect_remote
        self._breaker = breaker or RateLimitBreaker(
            threshold=settings.rate_limit_error_threshold,
            pause_s=settings.rate_limit_pause_s,
            poll_s=settings.rate_limit_poll_s,
            wait_margin_s=settings.rate_limit_wait_margin_s,
        )
        self._today = today
        self.state = BatchState.CREATED

    async def run(self, batch_id: str | None = None) -> BatchSummary:
        """Run a new batch, or resume ``batch_id``; the summary carries the exit code."""
        settings = self._settings
        if not settings.any_processing_enabled and not settings.any_transfer_enabled:
            logger.warning("No processing or transfer enabled, nothing to do")
            return BatchSummary(batch_id=batch_id or "", exit_code=0)

        try:
            version = self._store.migrate()
            logger.info("Audit schema at version %d", version)
            self._validate(resume=batch_id is not None)
            if batch_id is not None:
                await self._store.require_batch(batch_id)
                resumed = True
            else:
                batch_id = layout.generate_batch_id()
                resumed = False
        except (AuditStoreError, BatchNotFoundError, ConfigurationError) as e:
            logger.error("Batch setup failed: %s", e)
            return BatchSummary(batch_id=batch_id or "", exit_code=1, errors=[str(e)])

        assert settings.target_base_dir is not None
        root = layout.batch_root(settings.target_base_dir, batch_id)
        summary = BatchSummary(batch_id=batch_id, resumed=resumed)
        set_batch_context(batch_id)

        if resumed:
            logger.info("Resuming batch %s in %s", batch_id, root)
        else:
            layout.create_tree(root)
            await self._store.create_batch(batch_id, datetime.now(timezone.utc))
            logger.info("Batch %s started in %s", batch_id, root)

        async with AsyncExitStack() as stack:
            try:
                self.state = BatchState.RUNNING
                if resumed:
                    summary.counts = await self._recount(batch_id)
                else:
                    summary.counts = await self._acquire(stack, batch_id, root, summary)

                self.state = BatchState.FINALIZING
                set_pipeline_context("finalize")
                await self._finalize(batch_id, root, summary)
            except Exception as e:
                logger.exception("Batch %s failed", batch_id)
                summary.errors.append(str(e))
                summary.exit_code = 1
            finally:
                self.state = BatchState.CLOSED
                if await self._store.finalize_batch(batch_id):
                    logger.info("Batch %s closed", batch_id)
                summary.state = self.state
        return summary

    def _validate(self, resume: bool) -> None:
        settings = self._settings
        if settings.target_base_dir is None:
            raise ConfigurationError("TARGET_BASE_DIR is required")
        if resume or not settings.any_processing_enabled:
            return
        if self._source is None and not settings.source_db_url:
            raise ConfigurationError("SOURCE_DB_URL is required when processing is enabled")
        if settings.process_decentralized and settings.source_dir is None:
            raise ConfigurationError("SOURCE_DIR is required for decentralized processing")

    # --- running ---

    async def _acquire(
        self, stack: AsyncExitStack, batch_id: str, root: Path, summary: BatchSummary
    ) -> BatchCounts:
        settings = self._settings
        if not settings.any_processing_enabled:
            logger.info("Acquisition disabled, transfers only")
            return await self._recount(batch_id)

        source = self._source
        if source is None:
            source = SqlDocumentSource(settings.source_db_url)
            stack.push_async_callback(source.close)

        runs = []
        if settings.process_decentralized:
            runs.append(self._run_decentralized(source, batch_id, root))
        else:
            logger.info("Decentralized processing disabled")
        if settings.process_centralized:
            client = self._http_client
            if client is None:
                client = await stack.enter_async_context(httpx.AsyncClient())
            runs.append(self._run_centralized(source, client, batch_id, root))
        else:
            logger.info("Centralized processing disabled")

        names: list[str] = []
        for outcome in await gather_settled(*runs):
            if outcome.ok and outcome.value is not None:
                names.extend(outcome.value)
            else:
                logger.error("Pipeline failed: %s", outcome.error)
                summary.errors.append(str(outcome.error))

        counts = BatchCounts.from_filenames(names)
        await self._store.update_batch_counts(batch_id, counts)
        logger.info(
            "Files processed: %d (R=%d, N=%d, E=%d)", counts.total, counts.r, counts.n, counts.e
        )
        return counts

    async def _run_decentralized(self, source: DocumentSource, batch_id: str, root: Path) -> list[str]:
        pipeline = DecentralizedPipeline(self._settings, source, self._store, batch_id, root)
        return [r.target_name for r in await pipeline.run()]

    async def _run_centralized(
        self, source: DocumentSource, client: httpx.AsyncClient, batch_id: str, root: Path
    ) -> list[str]:
        settings = self._settings
        materializer = RemoteMaterializer(
            self._store,
            batch_id,
            client,
            self._breaker,
            RetryPolicy(
                max_attempts=settings.download_retry_count,
                base_delay_s=settings.download_base_delay_s,
            ),
            timeout_s=settings.download_timeout_s,
            stall_timeout_s=settings.download_stall_timeout_s,
            user_agent=settings.download_user_agent,
        )
        pipeline = CentralizedPipeline(settings, source, materializer, root, today=self._today)
        return [r.target_name for r in await pipeline.run()]

    async def _recount(self, batch_id: str) -> BatchCounts:
        records = await self._store.list_files(batch_id, DECENTRALIZED_TYPES + CENTRALIZED_TYPES)
        counts = BatchCounts.from_filenames([r.target_name for r in records])
        await self._store.update_batch_counts(batch_id, counts)
        logger.info(
            "Recounted %d files (R=%d, N=%d, E=%d)", counts.total, counts.r, counts.n, counts.e
        )
        return counts

    # --- finalizing ---

    async def _finalize(self, batch_id: str, root: Path, summary: BatchSummary) -> None:
        settings = self._settings
        full = await export_full(self._store, batch_id, root, batch_id)
        summary_path = await export_summary(self._store, batch_id, root, batch_id)
        summary.full_report = str(full) if full else None
        summary.summary_report = str(summary_path) if summary_path else None

        if not settings.any_transfer_enabled:
            logger.info("Transfers disabled")
            return

        async with self._connect_remote(settings) as client:
            engine = TransferEngine(
                self._store,
                settings.sftp_remote_base_dir,
                CourtesyDelay(settings.sftp_min_delay_ms, settings.sftp_max_delay_ms),
            )
            resolve = layout.transfer_resolver(root)
            remaining = 0

            if settings.transfer_decentralized:
                result = await ReconciliationLoop(
                    self._store,
                    engine,
                    "decentralized",
                    settings.decentralized_sftp_concurrency,
                    settings.transfer_retry_passes,
                ).run(client, batch_id, DECENTRALIZED_TYPES, resolve)
                remaining += result.remaining_failed

            if settings.transfer_centralized:
                result = await ReconciliationLoop(
                    self._store,
                    engine,
                    "centralized",
                    settings.centralized_sftp_concurrency,
                    settings.transfer_retry_passes,
                ).run(client, batch_id, CENTRALIZED_TYPES, resolve)
                remaining += result.remaining_failed

            summary.remaining_failed = remaining
            summary.bulk_report_status = await transfer_bulk_report(
                client,
                engine,
                self._store,
                batch_id,
                summary_path,
                layout.remote_subdir(root),
                remaining,
            )
