# src/core/naming.py — v1
"""Canonical target filenames.

The canonical filename is the idempotency key of both local materialization
and remote transfer: ``{prefix}_{product_code}_{code7}{extension}``.
"""

from __future__ import annotations

from pathlib import PurePath

CLASSIFICATION_WIDTH = 7
PAD_CHAR = "_"


def normalize_classification(code: str | None) -> str:
    """Strip path separators, then pad with ``_`` or truncate to 7 characters."""
    cleaned = (code or "").replace("/", "").replace("\\", "")
    return cleaned.ljust(CLASSIFICATION_WIDTH, PAD_CHAR)[:CLASSIFICATION_WIDTH]


def canonical_filename(
    kind_prefix: str,
    product_code: str,
    classification_code: str | None,
    extension: str,
) -> str:
    """Build the canonical filename.

    >>> canonical_filename("R", "60446911", "B05BB01", ".htm")
    'R_60446911_B05BB01.htm'
    >>> canonical_filename("R", "60446911", "B05B", ".htm")
    'R_60446911_B05B___.htm'
    """
    if extension and not extension.startswith("."):
        extension = f".{extension}"
    return f"{kind_prefix}_{product_code}_{normalize_classification(classification_code)}{extension}"


def extension_of(source_name: str) -> str:
    """Return the extension of a source filename, dot included ('' if none)."""
    return PurePath(source_name).suffix


def kind_prefix_of(filename: str) -> str:
    """Return the first character of a canonical filename ('' if empty)."""
    return filename[:1]
