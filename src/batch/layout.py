# src/batch/layout.py — v1
"""Batch identifiers and the dated directory layout, local and remote.

Local layout under ``target_base_dir``::

    Extract_RCP_{YYYYMMDD}/
        FR/RCP/
        FR/Notices/
        EU/RCP_Notices/

The remote tree mirrors it under ``sftp_remote_base_dir``.
"""

from __future__ import annotations

import posixpath
from datetime import datetime
from pathlib import Path

from rcpsync.audit.models import FileTransferRecord
from rcpsync.core.models import DocumentKind

BATCH_ID_FORMAT = "%Y%m%d_%H%M%S"
ROOT_PREFIX = "Extract_RCP_"


def generate_batch_id(timestamp: datetime | None = None) -> str:
    """Generate a batch_id: yyyymmdd_hhmmss (local time)."""
    return (timestamp or datetime.now()).strftime(BATCH_ID_FORMAT)


def root_name(batch_id: str) -> str:
    """Dated root directory name of a batch.

    >>> root_name("20250718_093012")
    'Extract_RCP_20250718'
    """
    return f"{ROOT_PREFIX}{batch_id[:8]}"


def batch_root(target_base_dir: Path, batch_id: str) -> Path:
    return target_base_dir / root_name(batch_id)


def kind_dir(root: Path, kind: DocumentKind) -> Path:
    return root.joinpath(*kind.subdir)


def create_tree(root: Path) -> list[Path]:
    """Create the batch root and every document-kind directory."""
    created = [root]
    root.mkdir(parents=True, exist_ok=True)
    for kind in DocumentKind:
        path = kind_dir(root, kind)
        path.mkdir(parents=True, exist_ok=True)
        created.append(path)
    return created


def remote_subdir(root: Path, kind: DocumentKind | None = None) -> str:
    """Remote directory, relative to the base, mirroring a local one."""
    if kind is None:
        return root.name
    return posixpath.join(root.name, *kind.subdir)


def transfer_resolver(root: Path):
    """Build the (local path, remote subdir) resolver for audit rows of a batch."""

    def resolve(record: FileTransferRecord) -> tuple[Path, str]:
        kind = DocumentKind(record.document_type)
        return kind_dir(root, kind) / record.target_name, remote_subdir(root, kind)

    return resolve
