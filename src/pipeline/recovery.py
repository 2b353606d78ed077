# src/pipeline/recovery.py — v1
"""Catch-up of EU downloads that failed during a batch.

Selects the batch's EU rows whose artifact is not on disk and retries each
download with the regular retry policy and rate-limit breaker. Optionally
repeats after a pause while failures remain.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable

import httpx
from pydantic import BaseModel

from rcpsync.audit.models import CopyStatus, TransferStatus
from rcpsync.core.models import CENTRALIZED_TYPES
from rcpsync.logging.context import set_batch_context, set_pipeline_context
from rcpsync.materialize.remote_download import RemoteMaterializer
from rcpsync.throttle.circuit_breaker import RateLimitBreaker
from rcpsync.throttle.retry import RetryPolicy

if TYPE_CHECKING:
    from rcpsync.audit.models import FileTransferRecord
    from rcpsync.audit.store import AuditStore
    from rcpsync.config.settings import Settings

logger = logging.getLogger(__name__)


class RecoveryResult(BaseModel):
    batch_id: str
    cycles: int = 0
    recovered: int = 0
    remaining: int = 0


class DownloadRecovery:
    """Retry failed EU downloads of one batch (the latest by default)."""

    def __init__(
        self,
        settings: Settings,
        store: AuditStore,
        client: httpx.AsyncClient,
        breaker: RateLimitBreaker | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_cycles: int | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._client = client
        self._breaker = breaker or RateLimitBreaker(
            threshold=settings.rate_limit_error_threshold,
            pause_s=settings.rate_limit_pause_s,
            poll_s=settings.rate_limit_poll_s,
            wait_margin_s=settings.rate_limit_wait_margin_s,
        )
        self._sleep = sleep
        self._max_cycles = max_cycles

    async def run(self, batch_id: str | None = None) -> RecoveryResult:
        """Run recovery cycles.

        Raises:
            BatchNotFoundError: If ``batch_id`` is given but unknown.
        """
        set_pipeline_context("recovery")
        if batch_id is not None:
            batch = await self._store.require_batch(batch_id)
        else:
            batch = await self._store.latest_batch()
            if batch is None:
                logger.warning("No batch recorded, nothing to recover")
                return RecoveryResult(batch_id="")
        set_batch_context(batch.batch_id)

        materializer = RemoteMaterializer(
            self._store,
            batch.batch_id,
            self._client,
            self._breaker,
            RetryPolicy(
                max_attempts=self._settings.download_retry_count,
                base_delay_s=self._settings.download_base_delay_s,
            ),
            timeout_s=self._settings.download_timeout_s,
            stall_timeout_s=self._settings.download_stall_timeout_s,
            user_agent=self._settings.download_user_agent,
        )
        result = RecoveryResult(batch_id=batch.batch_id)

        while True:
            failed = await self._store.failed_downloads(batch.batch_id, CENTRALIZED_TYPES)
            if not failed:
                logger.info("No failed download left for batch %s", batch.batch_id)
                break

            result.cycles += 1
            logger.info("Recovery cycle %d: %d file(s) to recover", result.cycles, len(failed))
            for row in failed:
                if await self._recover_one(materializer, row):
                    result.recovered += 1

            result.remaining = len(
                await self._store.failed_downloads(batch.batch_id, CENTRALIZED_TYPES)
            )
            if result.remaining == 0 or not self._settings.recovery_repeat:
                break
            if self._max_cycles is not None and result.cycles >= self._max_cycles:
                break
            logger.info(
                "%d file(s) still failing, next cycle in %.0fs",
                result.remaining, self._settings.recovery_delay_s,
            )
            await self._sleep(self._settings.recovery_delay_s)

        logger.info(
            "Recovery finished for batch %s: %d recovered, %d remaining",
            batch.batch_id, result.recovered, result.remaining,
        )
        return result

    async def _recover_one(self, materializer: RemoteMaterializer, row: FileTransferRecord) -> bool:
        target = Path(row.target_dir) / row.target_name
        if target.exists():
            logger.info("File present since the batch ran: %s", target)
            await self._store.update_copy_status(
                row.batch_id, row.target_name, CopyStatus.COPIED.value
            )
        else:
            url = f"{row.source_dir}{row.source_name}"
            if not url:
                logger.error("No URL recorded for %s", row.target_name)
                return False
            if await materializer.download(url, target) is None:
                return False

        # A transfer pass that found no local file must pick the row up again.
        if row.transfer_status == TransferStatus.LOCAL_MISSING.value:
            await self._store.clear_transfer_status(row.batch_id, row.target_name)
        return True
