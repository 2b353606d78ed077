# src/pipeline/centralized.py — v1
"""Centralized pipeline: EU product PDFs listed in the monthly CSV.

Each CSV row is enriched from the source (classification, name, reference
product), then its PDF is downloaded when a URL is given.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel

from rcpsync.core.models import DocumentKind, EuropeanDocument, ProductInfo
from rcpsync.logging.context import set_document_context, set_pipeline_context
from rcpsync.pipeline.csv_reader import monthly_csv_name, read_delimited
from rcpsync.pipeline.decentralized import apply_cap
from rcpsync.throttle.courtesy import CourtesyDelay
from rcpsync.throttle.limiter import BoundedLimiter

if TYPE_CHECKING:
    from rcpsync.config.settings import Settings
    from rcpsync.materialize.remote_download import RemoteMaterializer
    from rcpsync.source.base_source import DocumentSource

logger = logging.getLogger(__name__)

# Column names of the monthly export.
COL_PRODUCT_CODE = "SpecId"
COL_URL = "UrlEpar"
COL_PRODUCT_NUMBER = "Product_Number"


class CentralizedRow(BaseModel):
    """One processed CSV row; ``target_name`` is empty when no PDF was stored."""

    document: EuropeanDocument
    target_name: str = ""


class CentralizedPipeline:
    """Download EU documents into ``EU/RCP_Notices``."""

    def __init__(
        self,
        settings: Settings,
        source: DocumentSource,
        materializer: RemoteMaterializer,
        batch_root: Path,
        today: date | None = None,
    ) -> None:
        self._settings = settings
        self._source = source
        self._materializer = materializer
        self._batch_root = batch_root
        self._today = today
        self._delay = CourtesyDelay(
            settings.centralized_min_delay_ms, settings.centralized_max_delay_ms
        )

    def csv_path(self) -> Path | None:
        if self._settings.eu_csv_dir is None:
            return None
        return self._settings.eu_csv_dir / monthly_csv_name(self._today or date.today())

    async def run(self) -> list[CentralizedRow]:
        """Process the current month's CSV; failing rows are excluded from the result."""
        set_pipeline_context("centralized")
        path = self.csv_path()
        if path is None or not path.exists():
            logger.info("No centralized CSV for the current month (%s)", path)
            return []

        logger.info("Reading centralized CSV %s", path)
        rows = await asyncio.to_thread(read_delimited, path)
        if not rows:
            logger.warning("Centralized CSV %s has no data rows", path)
            return []

        rows = apply_cap(rows, self._settings.max_files_to_process)
        target_dir = self._batch_root.joinpath(*DocumentKind.EU.subdir)

        limiter = BoundedLimiter("centralized", self._settings.centralized_concurrency)
        settled = await limiter.map_settled(lambda row: self._process_row(row, target_dir), rows)

        processed: list[CentralizedRow] = []
        for row, outcome in zip(rows, settled):
            if outcome.ok and outcome.value is not None:
                processed.append(outcome.value)
            else:
                logger.error(
                    "Failed to process centralized row %s: %s",
                    row.get(COL_PRODUCT_CODE, ""), outcome.error,
                )
        downloaded = sum(1 for r in processed if r.target_name)
        logger.info(
            "Centralized done: %d rows processed, %d PDFs stored, %d failed",
            len(processed), downloaded, len(rows) - len(processed),
        )
        return processed

    async def _process_row(self, row: dict[str, str], target_dir: Path) -> CentralizedRow:
        product_code = row.get(COL_PRODUCT_CODE, "")
        set_document_context(product_code or None)

        info = await self._source.lookup_product(product_code)
        if info is None:
            logger.debug("Product %s not found in the source", product_code)
            info = ProductInfo()

        document = EuropeanDocument(
            product_code=product_code,
            product_number=row.get(COL_PRODUCT_NUMBER, ""),
            url=row.get(COL_URL, ""),
            classification_code=info.classification_code,
            classification_label=info.classification_label,
            product_name=info.product_name,
            reference_product=info.reference_product,
        )

        target_name = ""
        if document.url:
            path = await self._materializer.materialize(document, target_dir)
            if path is not None:
                target_name = path.name
            await self._delay.wait()

        return CentralizedRow(document=document, target_name=target_name)
