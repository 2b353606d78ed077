# src/materialize/remote_download.py — v1
"""Remote materialization: download EU PDF documents over HTTP.

Each attempt streams into its own ``<name>.<random>.part`` file, written
off the event loop, and renames it on completion, so a crash never leaves a
truncated file under the canonical name. Documents sharing a canonical name
are serialized on a per-target lock: the first one downloads, the others
find the file and record ``already-present``. HTTP 429 responses feed the
shared RateLimitBreaker; every other outcome resets it.
"""

from __future__ import annotations

import asyncio
import logging
import os
import posixpath
import tempfile
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlsplit

import httpx

from rcpsync.audit.models import (
    CopyStatus,
    FileTransferRecord,
    download_failed,
    not_a_pdf,
)
from rcpsync.audit.store import AuditStore
from rcpsync.core.models import DocumentKind, EuropeanDocument
from rcpsync.core.naming import canonical_filename
from rcpsync.materialize.models import NotAPdfError, RateLimitedError
from rcpsync.throttle.circuit_breaker import RateLimitBreaker
from rcpsync.throttle.retry import RetryPolicy

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
CHUNK_SIZE = 64 * 1024


def split_url(url: str) -> tuple[str, str]:
    """Split a document URL into its directory and file name.

    >>> split_url("https://ec.europa.eu/health/documents/h123.pdf")
    ('https://ec.europa.eu/health/documents/', 'h123.pdf')
    """
    parts = urlsplit(url)
    directory, name = posixpath.split(parts.path)
    base = f"{parts.scheme}://{parts.netloc}" if parts.netloc else ""
    return f"{base}{directory.rstrip('/')}/", name


class RemoteMaterializer:
    """Download centralized-product PDFs into the batch tree."""

    def __init__(
        self,
        store: AuditStore,
        batch_id: str,
        client: httpx.AsyncClient,
        breaker: RateLimitBreaker,
        policy: RetryPolicy | None = None,
        timeout_s: float = 30.0,
        stall_timeout_s: float = 60.0,
        user_agent: str | None = None,
    ) -> None:
        self._store = store
        self._batch_id = batch_id
        self._client = client
        self._breaker = breaker
        self._policy = policy or RetryPolicy()
        self._timeout_s = timeout_s
        self._stall_timeout_s = stall_timeout_s
        self._headers = {"User-Agent": user_agent} if user_agent else {}
        self._locks: dict[Path, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def materialize(self, document: EuropeanDocument, target_dir: Path | None) -> Path | None:
        """Ensure the document's PDF exists under its canonical name.

        Returns:
            The local path, or None when the download failed.

        Raises:
            ValueError: If url, product code or target directory is missing.
        """
        if not document.url or not document.product_code or target_dir is None:
            raise ValueError(
                f"Missing download parameters (url={document.url!r}, "
                f"product_code={document.product_code!r}, target_dir={target_dir!r})"
            )

        name = canonical_filename(
            DocumentKind.EU.prefix, document.product_code, document.classification_code, ".pdf"
        )
        target = target_dir / name
        source_dir, source_name = split_url(document.url)

        record = FileTransferRecord(
            batch_id=self._batch_id,
            source_dir=source_dir,
            source_name=source_name,
            target_dir=str(target_dir),
            target_name=name,
            product_code=document.product_code,
            classification_code=document.classification_code,
            document_type=DocumentKind.EU.value,
            classification_label=document.classification_label,
            product_name=document.product_name,
            reference_product=document.reference_product,
            copied_at=datetime.now(timezone.utc),
        )

        async with self._locks[target]:
            if target.exists():
                logger.info("PDF already present: %s", target)
                await self._store.upsert_file(
                    record.model_copy(update={"copy_status": CopyStatus.ALREADY_PRESENT.value})
                )
                return target

            await self._store.upsert_file(
                record.model_copy(update={"copy_status": CopyStatus.PENDING.value})
            )
            return await self.download(document.url, target)

    async def download(self, url: str, target: Path) -> Path | None:
        """Download ``url`` to ``target`` with retries; the audit row must exist.

        The row ``(batch_id, target.name)`` receives the final copy status.
        """
        name = target.name
        status = download_failed("no attempt made")

        for attempt in range(1, self._policy.max_attempts + 1):
            await self._breaker.wait_if_paused()
            await self._policy.wait_before(attempt)
            try:
                await asyncio.wait_for(self._fetch(url, target), timeout=self._stall_timeout_s)
            except NotAPdfError as e:
                logger.error("Not a PDF: %s", e)
                await self._store.update_copy_status(
                    self._batch_id, name, not_a_pdf(e.content_type)
                )
                return None
            except RateLimitedError:
                status = download_failed("HTTP 429")
                await self._breaker.record_rate_limited()
            except TimeoutError:
                self._breaker.record_success()
                status = download_failed(f"stalled for more than {self._stall_timeout_s:.0f}s")
            except httpx.HTTPStatusError as e:
                self._breaker.record_success()
                status = download_failed(f"HTTP {e.response.status_code}")
            except (httpx.HTTPError, OSError) as e:
                self._breaker.record_success()
                status = download_failed(f"{type(e).__name__}: {e}")
            else:
                await self._store.update_copy_status(self._batch_id, name, CopyStatus.COPIED.value)
                logger.info("Downloaded %s", name)
                return target

            logger.warning(
                "Download of %s failed (attempt %d/%d): %s",
                name, attempt, self._policy.max_attempts, status,
            )

        logger.error("Giving up on %s after %d attempts", url, self._policy.max_attempts)
        await self._store.update_copy_status(self._batch_id, name, status)
        return None

    async def _fetch(self, url: str, target: Path) -> None:
        async with self._client.stream(
            "GET", url, headers=self._headers, timeout=self._timeout_s, follow_redirects=True
        ) as response:
            if response.status_code == 429:
                raise RateLimitedError(url)
            response.raise_for_status()
            self._breaker.record_success()

            content_type = response.headers.get("content-type")
            if not content_type or PDF_CONTENT_TYPE not in content_type.lower():
                raise NotAPdfError(url, content_type)

            fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=f"{target.name}.", suffix=".part")
            partial = Path(tmp)
            try:
                with os.fdopen(fd, "wb") as fh:
                    async for chunk in response.aiter_bytes(chunk_size=CHUNK_SIZE):
                        await asyncio.to_thread(fh.write, chunk)
                partial.replace(target)
            finally:
                partial.unlink(missing_ok=True)
