# src/transfer/engine.py — v1
"""Single-file transfer with same-size idempotency and post-upload verification."""

from __future__ import annotations

import logging
import posixpath
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from rcpsync.audit.models import TransferStatus
from rcpsync.throttle.courtesy import CourtesyDelay

if TYPE_CHECKING:
    from rcpsync.audit.store import AuditStore
    from rcpsync.transfer.base_remote_client import BaseRemoteClient

logger = logging.getLogger(__name__)


class TransferEngine:
    """Push one local artifact to the remote server and audit the outcome.

    The audit row ``(batch_id, remote_name)`` is updated whatever happens:
    ``already-present-same-size`` when the remote copy already matches,
    ``transfer-ok`` or ``transfer-failed`` otherwise. Errors raised by the
    client are logged and re-raised after the row is updated.
    """

    def __init__(
        self,
        store: AuditStore,
        remote_base_dir: str,
        delay: CourtesyDelay | None = None,
    ) -> None:
        self._store = store
        self._remote_base_dir = remote_base_dir
        self._delay = delay or CourtesyDelay(100, 300)

    def remote_path(self, remote_subdir: str, remote_name: str) -> str:
        return posixpath.join(self._remote_base_dir, remote_subdir, remote_name)

    async def transfer(
        self,
        client: BaseRemoteClient,
        local_path: Path,
        remote_subdir: str,
        remote_name: str,
        batch_id: str,
        product_code: str = "",
        classification_code: str = "",
    ) -> str:
        """Transfer one file and return the recorded status."""
        remote_path = self.remote_path(remote_subdir, remote_name)
        started_at = datetime.now(timezone.utc)
        status = TransferStatus.FAILED.value
        logger.info(
            "Transferring %s -> %s (product %s, %s)",
            local_path, remote_path, product_code, classification_code,
        )
        try:
            local_size = local_path.stat().st_size
            if await client.stat_size(remote_path) == local_size:
                logger.info("Already on the server with the same size: %s", remote_path)
                status = TransferStatus.ALREADY_PRESENT.value
                return status

            await client.makedirs(posixpath.dirname(remote_path))
            await self._delay.wait()
            await client.put(local_path, remote_path)

            remote_size = await client.stat_size(remote_path)
            if remote_size == local_size:
                status = TransferStatus.OK.value
                logger.info("Transferred %s (%d bytes)", remote_path, local_size)
            else:
                logger.error(
                    "Size mismatch for %s: local=%d, remote=%s",
                    remote_path, local_size, remote_size,
                )
            return status
        except Exception:
            logger.exception("Transfer of %s to %s failed", local_path, remote_path)
            raise
        finally:
            await self._store.update_transfer_status(batch_id, remote_name, status, started_at)
