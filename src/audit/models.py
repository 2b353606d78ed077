# src/audit/models.py — v1
"""Audit domain models: BatchRecord, FileTransferRecord and status vocabularies."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from rcpsync.core.models import DocumentKind
from rcpsync.core.naming import kind_prefix_of


class CopyStatus(str, Enum):
    """Local materialization outcomes.

    Failed downloads store a free-text description instead (see
    ``not_a_pdf`` and ``download_failed``).
    """

    COPIED = "copied"
    ALREADY_PRESENT = "already-present"
    SOURCE_NOT_FOUND = "source-not-found"
    PENDING = "pending"
    UNVERIFIED = "copy-unverified"


class TransferStatus(str, Enum):
    """Remote transfer outcomes."""

    OK = "transfer-ok"
    FAILED = "transfer-failed"
    ALREADY_PRESENT = "already-present-same-size"
    LOCAL_MISSING = "local-file-missing"


# Local outcomes meaning the artifact is on disk.
MATERIALIZED_STATUSES: tuple[str, ...] = (
    CopyStatus.COPIED.value,
    CopyStatus.ALREADY_PRESENT.value,
)

REPORT_DOCUMENT_TYPE = "REPORT"


def not_a_pdf(content_type: str | None) -> str:
    return f"not-a-pdf (content-type: {content_type})"


def download_failed(detail: str) -> str:
    return f"download-failed: {detail}"


class BatchRecord(BaseModel):
    """One execution unit."""

    id: int | None = None
    batch_id: str
    started_at: datetime
    ended_at: datetime | None = None
    duration_seconds: int | None = None
    files_processed: int = 0
    files_r: int = 0
    files_n: int = 0
    files_e: int = 0


class FileTransferRecord(BaseModel):
    """One document instance processed within a batch.

    ``(batch_id, target_name)`` identifies the record; later operations
    update it in place.
    """

    id: int | None = None
    batch_id: str
    source_dir: str = ""
    source_name: str = ""
    target_dir: str = ""
    target_name: str
    product_code: str = ""
    classification_code: str = ""
    document_type: str = ""
    classification_label: str | None = None
    product_name: str | None = None
    reference_product: str | None = None
    copied_at: datetime | None = None
    copy_status: str | None = None
    transferred_at: datetime | None = None
    transfer_status: str | None = None


class BatchCounts(BaseModel):
    """Per-category file counts, classified by canonical filename prefix."""

    total: int = 0
    r: int = 0
    n: int = 0
    e: int = 0

    @classmethod
    def from_filenames(cls, names: list[str]) -> BatchCounts:
        kinds = [DocumentKind.from_prefix(kind_prefix_of(n)) for n in names]
        return cls(
            total=len(names),
            r=kinds.count(DocumentKind.SPC),
            n=kinds.count(DocumentKind.LEAFLET),
            e=kinds.count(DocumentKind.EU),
        )
