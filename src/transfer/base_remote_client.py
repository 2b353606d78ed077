# src/transfer/base_remote_client.py — v1
"""Abstract remote file-server interface used by the transfer engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


class BaseRemoteClient(ABC):
    """Minimal remote filesystem operations over one open connection."""

    @abstractmethod
    async def stat_size(self, remote_path: str) -> int | None:
        """Size of a remote file in bytes, or None if it does not exist."""

    @abstractmethod
    async def makedirs(self, remote_dir: str) -> None:
        """Create a remote directory and its parents; existing ones are fine."""

    @abstractmethod
    async def put(self, local_path: Path, remote_path: str) -> None:
        """Upload a local file, replacing any remote file at that path."""
