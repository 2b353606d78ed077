# src/materialize/models.py — v1
"""Materialization outcome and error types."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel


class MaterializeResult(BaseModel):
    """Outcome of one local copy."""

    target_name: str
    target_path: Path
    status: str

    @property
    def materialized(self) -> bool:
        return self.target_path.exists()


class RateLimitedError(Exception):
    """The remote server answered HTTP 429."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Rate limited (429): {url}")


class NotAPdfError(Exception):
    """The response is not a PDF document; never retried."""

    def __init__(self, url: str, content_type: str | None) -> None:
        self.url = url
        self.content_type = content_type
        super().__init__(f"{url} returned content-type {content_type!r}")
