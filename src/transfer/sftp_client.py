# src/transfer/sftp_client.py — v1
"""SFTP remote client over asyncssh.

One connection is opened per run and shared by every transfer task; open it
with ``async with SftpRemoteClient.connect(settings) as client``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator

import asyncssh

from rcpsync.config.settings import ConfigurationError
from rcpsync.transfer.base_remote_client import BaseRemoteClient

if TYPE_CHECKING:
    from rcpsync.config.settings import Settings

logger = logging.getLogger(__name__)


class SftpRemoteClient(BaseRemoteClient):
    """BaseRemoteClient backed by an asyncssh SFTP session."""

    def __init__(self, sftp: asyncssh.SFTPClient) -> None:
        self._sftp = sftp

    async def stat_size(self, remote_path: str) -> int | None:
        try:
            attrs = await self._sftp.stat(remote_path)
        except asyncssh.SFTPNoSuchFile:
            return None
        return attrs.size

    async def makedirs(self, remote_dir: str) -> None:
        await self._sftp.makedirs(remote_dir, exist_ok=True)

    async def put(self, local_path: Path, remote_path: str) -> None:
        await self._sftp.put(str(local_path), remote_path)

    @classmethod
    @asynccontextmanager
    async def connect(cls, settings: Settings) -> AsyncIterator[SftpRemoteClient]:
        """Open the run's SFTP connection.

        Raises:
            ConfigurationError: If a required SFTP setting is missing.
            asyncssh.Error, OSError: If the connection cannot be established.
        """
        missing = settings.missing_sftp_fields()
        if missing:
            raise ConfigurationError(f"Missing SFTP settings: {', '.join(missing)}")

        known_hosts = str(settings.sftp_known_hosts) if settings.sftp_known_hosts else None
        logger.info(
            "Connecting to SFTP %s:%d as %s",
            settings.sftp_host, settings.sftp_port, settings.sftp_user,
        )
        async with asyncssh.connect(
            settings.sftp_host,
            port=settings.sftp_port,
            username=settings.sftp_user,
            client_keys=[str(settings.sftp_private_key_path)],
            known_hosts=known_hosts,
        ) as conn:
            async with conn.start_sftp_client() as sftp:
                logger.info("SFTP connection established")
                yield cls(sftp)
        logger.info("SFTP connection closed")
