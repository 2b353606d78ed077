# src/logging/context.py — v1
"""Contextual logging support: attach batch_id, pipeline and document to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Set once per batch, then per pipeline task and per document task.
_batch_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "batch_id", default=None
)
_pipeline: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "pipeline", default=None
)
_document: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "document", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    batch_id: str | None = None
    pipeline: str | None = None
    document: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        batch_id=_batch_id.get(),
        pipeline=_pipeline.get(),
        document=_document.get(),
    )


def set_batch_context(batch_id: str) -> None:
    """Set batch-level context (called once per run)."""
    _batch_id.set(batch_id)


def set_pipeline_context(pipeline: str) -> None:
    """Set pipeline-level context.

    asyncio tasks copy the context on creation, so a value set inside a
    pipeline task does not leak into its sibling.
    """
    _pipeline.set(pipeline)


def set_document_context(document: str | None) -> None:
    _document.set(document)


def clear_context() -> None:
    """Reset all context variables."""
    _batch_id.set(None)
    _pipeline.set(None)
    _document.set(None)
