# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides settings without .env, an in-memory audit store, a fake remote
file server and a fake document source. No network, no real SFTP.
"""

from __future__ import annotations

import posixpath
from pathlib import Path

import pytest

from rcpsync.audit.store import AuditStore
from rcpsync.config.settings import Settings
from rcpsync.core.models import DomesticDocument, ProductInfo
from rcpsync.source.base_source import DocumentSource
from rcpsync.transfer.base_remote_client import BaseRemoteClient


# === FAKES ===


class FakeRemoteClient(BaseRemoteClient):
    """In-memory remote server recording every call.

    ``fail_puts[name] = n`` makes the next n uploads of ``name`` raise;
    names in ``truncate`` are stored one byte short.
    """

    def __init__(self) -> None:
        self.files: dict[str, int] = {}
        self.dirs: set[str] = set()
        self.puts: list[str] = []
        self.fail_puts: dict[str, int] = {}
        self.truncate: set[str] = set()

    async def stat_size(self, remote_path: str) -> int | None:
        return self.files.get(remote_path)

    async def makedirs(self, remote_dir: str) -> None:
        self.dirs.add(remote_dir)

    async def put(self, local_path: Path, remote_path: str) -> None:
        self.puts.append(remote_path)
        name = posixpath.basename(remote_path)
        if self.fail_puts.get(name, 0) > 0:
            self.fail_puts[name] -= 1
            raise OSError(f"Connection reset while sending {name}")
        size = local_path.stat().st_size
        self.files[remote_path] = size - 1 if name in self.truncate else size


class FakeDocumentSource(DocumentSource):
    """Source returning fixed documents and products."""

    def __init__(
        self,
        spc: list[DomesticDocument] | None = None,
        leaflets: list[DomesticDocument] | None = None,
        products: dict[str, ProductInfo] | None = None,
        failing_codes: set[str] | None = None,
    ) -> None:
        self.spc = spc or []
        self.leaflets = leaflets or []
        self.products = products or {}
        self.failing_codes = failing_codes or set()
        self.closed = False

    async def list_spc(self) -> list[DomesticDocument]:
        return list(self.spc)

    async def list_leaflets(self) -> list[DomesticDocument]:
        return list(self.leaflets)

    async def lookup_product(self, product_code: str) -> ProductInfo | None:
        if product_code in self.failing_codes:
            raise RuntimeError(f"Lookup failed for {product_code}")
        return self.products.get(product_code)

    async def close(self) -> None:
        self.closed = True


def make_domestic(
    kind: str = "RCP",
    product_code: str = "60446911",
    classification_code: str = "B05BB01",
    source_name: str | None = None,
) -> DomesticDocument:
    prefix = "R" if kind == "RCP" else "N"
    return DomesticDocument(
        kind=kind,
        product_code=product_code,
        product_name=f"Product {product_code}",
        authorization_label="AMM",
        classification_code=classification_code,
        classification_label="Electrolytes",
        reference_product_code=None,
        doc_id=int(product_code),
        source_name=source_name or f"{prefix}{product_code}.htm",
    )


# === FIXTURES ===


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from any .env, with zero delays and temp directories."""
    for name in ("source", "target", "csv"):
        (tmp_path / name).mkdir()
    return Settings(
        _env_file=None,
        source_db_url="sqlite://",
        source_dir=tmp_path / "source",
        target_base_dir=tmp_path / "target",
        eu_csv_dir=tmp_path / "csv",
        audit_db_path=tmp_path / "audit.db",
        log_file=None,
        decentralized_min_delay_ms=0,
        decentralized_max_delay_ms=0,
        centralized_min_delay_ms=0,
        centralized_max_delay_ms=0,
        sftp_min_delay_ms=0,
        sftp_max_delay_ms=0,
        download_base_delay_s=0.0,
        sftp_host="sftp.example.org",
        sftp_user="rcp",
        sftp_private_key_path=tmp_path / "id_ed25519",
        sftp_remote_base_dir="/upload",
    )


@pytest.fixture
def store():
    """Migrated in-memory audit store."""
    s = AuditStore(":memory:")
    s.migrate()
    yield s
    s.close()


@pytest.fixture
def remote() -> FakeRemoteClient:
    return FakeRemoteClient()


@pytest.fixture
def make_document():
    return make_domestic


@pytest.fixture
def fake_source_cls():
    return FakeDocumentSource
