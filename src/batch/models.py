# src/batch/models.py — v1
"""Batch run models: lifecycle state and run summary."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from rcpsync.audit.models import BatchCounts


class BatchState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    FINALIZING = "finalizing"
    CLOSED = "closed"


class BatchSummary(BaseModel):
    """Outcome of one coordinator run."""

    batch_id: str
    resumed: bool = False
    state: BatchState = BatchState.CREATED
    counts: BatchCounts = Field(default_factory=BatchCounts)
    full_report: str | None = None
    summary_report: str | None = None
    remaining_failed: int = 0
    bulk_report_status: str | None = None
    errors: list[str] = Field(default_factory=list)
    exit_code: int = 0
