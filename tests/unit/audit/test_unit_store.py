# tests/unit/audit/test_unit_store.py — v1
"""Tests for audit/store.py — migrations, batches, file records (stdlib sqlite3)."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from rcpsync.audit.models import BatchCounts, FileTransferRecord, TransferStatus
from rcpsync.audit.store import AuditStore, BatchNotFoundError

START = datetime(2025, 7, 18, 9, 30, 12, tzinfo=timezone.utc)


def _record(name: str = "R_1_A01AA01.htm", **kw) -> FileTransferRecord:
    values = dict(
        batch_id="20250718_093012",
        source_dir="/src",
        source_name="R1.htm",
        target_dir="/target/FR/RCP",
        target_name=name,
        product_code="1",
        classification_code="A01AA01",
        document_type="RCP",
        copy_status="copied",
    )
    values.update(kw)
    return FileTransferRecord(**values)


class TestMigrations:
    def test_fresh_database(self, tmp_path):
        store = AuditStore(tmp_path / "audit.db")
        assert store.migrate() == 4
        store.close()

    def test_idempotent(self, tmp_path):
        path = tmp_path / "audit.db"
        store = AuditStore(path)
        store.migrate()
        store.close()
        store = AuditStore(path)
        assert store.migrate() == 4
        store.close()

    def test_upgrades_existing_schema(self, tmp_path):
        path = tmp_path / "audit.db"
        conn = sqlite3.connect(path)
        conn.executescript(
            """
            CREATE TABLE file_transfers (
                id INTEGER PRIMARY KEY AUTOINCREMENT, batch_id TEXT NOT NULL,
                source_dir TEXT, source_name TEXT, target_dir TEXT,
                target_name TEXT NOT NULL, product_code TEXT, classification_code TEXT,
                document_type TEXT, copied_at TEXT, copy_status TEXT,
                transferred_at TEXT, transfer_status TEXT
            );
            CREATE TABLE batches (
                id INTEGER PRIMARY KEY AUTOINCREMENT, batch_id TEXT NOT NULL UNIQUE,
                started_at TEXT NOT NULL, ended_at TEXT, duration_seconds INTEGER
            );
            PRAGMA user_version = 1;
            """
        )
        conn.execute(
            "INSERT INTO file_transfers (batch_id, target_name) VALUES ('b', 'R_1_A______.htm')"
        )
        conn.commit()
        conn.close()

        store = AuditStore(path)
        assert store.migrate() == 4
        columns = {r[1] for r in store._conn.execute("PRAGMA table_info(file_transfers)")}
        assert {"classification_label", "product_name", "reference_product"} <= columns
        store.close()


class TestBatches:
    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        await store.create_batch("20250718_093012", START)
        batch = await store.get_batch("20250718_093012")
        assert batch is not None
        assert batch.started_at == START
        assert batch.ended_at is None

    @pytest.mark.asyncio
    async def test_require_missing(self, store):
        with pytest.raises(BatchNotFoundError, match="nope"):
            await store.require_batch("nope")

    @pytest.mark.asyncio
    async def test_latest_and_list(self, store):
        await store.create_batch("20250717_080000", START - timedelta(days=1))
        await store.create_batch("20250718_093012", START)
        assert (await store.latest_batch()).batch_id == "20250718_093012"
        assert [b.batch_id for b in await store.list_batches(limit=1)] == ["20250718_093012"]

    @pytest.mark.asyncio
    async def test_update_counts(self, store):
        await store.create_batch("b", START)
        await store.update_batch_counts("b", BatchCounts(total=5, r=2, n=2, e=1))
        batch = await store.get_batch("b")
        assert (batch.files_processed, batch.files_r, batch.files_n, batch.files_e) == (5, 2, 2, 1)

    @pytest.mark.asyncio
    async def test_finalize_once(self, store):
        await store.create_batch("b", START)
        assert await store.finalize_batch("b", START + timedelta(seconds=90)) is True
        assert await store.finalize_batch("b", START + timedelta(hours=2)) is False
        batch = await store.get_batch("b")
        assert batch.duration_seconds == 90
        assert batch.ended_at == START + timedelta(seconds=90)

    @pytest.mark.asyncio
    async def test_finalize_unknown(self, store):
        assert await store.finalize_batch("missing") is False


class TestFileRecords:
    @pytest.mark.asyncio
    async def test_upsert_inserts_once(self, store):
        await store.upsert_file(_record())
        await store.upsert_file(_record(copy_status="already-present"))
        rows = await store.list_files("20250718_093012")
        assert len(rows) == 1
        assert rows[0].copy_status == "already-present"

    @pytest.mark.asyncio
    async def test_upsert_keeps_transfer_columns(self, store):
        await store.upsert_file(_record())
        await store.update_transfer_status(
            "20250718_093012", "R_1_A01AA01.htm", TransferStatus.OK.value
        )
        await store.upsert_file(_record(copy_status="already-present"))
        row = await store.get_file("20250718_093012", "R_1_A01AA01.htm")
        assert row.transfer_status == "transfer-ok"
        assert row.transferred_at is not None

    @pytest.mark.asyncio
    async def test_same_name_different_batches(self, store):
        await store.upsert_file(_record(batch_id="b1"))
        await store.upsert_file(_record(batch_id="b2"))
        assert len(await store.list_files("b1")) == 1
        assert len(await store.list_files("b2")) == 1

    @pytest.mark.asyncio
    async def test_update_transfer_status_rowcount(self, store):
        await store.upsert_file(_record())
        assert await store.update_transfer_status("20250718_093012", "R_1_A01AA01.htm", "transfer-ok") == 1
        assert await store.update_transfer_status("20250718_093012", "unknown", "transfer-ok") == 0

    @pytest.mark.asyncio
    async def test_list_files_by_type(self, store):
        await store.upsert_file(_record("R_1_A______.htm"))
        await store.upsert_file(_record("N_1_A______.htm", document_type="Notice"))
        await store.upsert_file(_record("E_1_A______.pdf", document_type="RCP_Notice_EU"))
        names = [r.target_name for r in await store.list_files("20250718_093012", ["RCP", "Notice"])]
        assert names == ["R_1_A______.htm", "N_1_A______.htm"]

    @pytest.mark.asyncio
    async def test_pending_transfers(self, store):
        batch = "20250718_093012"
        for name, status in [
            ("R_1_A______.htm", None),
            ("R_2_A______.htm", "transfer-failed"),
            ("R_3_A______.htm", "transfer-ok"),
            ("R_4_A______.htm", "already-present-same-size"),
            ("R_5_A______.htm", "local-file-missing"),
        ]:
            await store.upsert_file(_record(name))
            if status:
                await store.update_transfer_status(batch, name, status)
        pending = await store.pending_transfers(batch, ["RCP"])
        assert [r.target_name for r in pending] == ["R_1_A______.htm", "R_2_A______.htm"]

    @pytest.mark.asyncio
    async def test_failed_downloads(self, store):
        batch = "20250718_093012"
        eu = dict(document_type="RCP_Notice_EU")
        await store.upsert_file(_record("E_1_A______.pdf", copy_status="copied", **eu))
        await store.upsert_file(_record("E_2_A______.pdf", copy_status="already-present", **eu))
        await store.upsert_file(_record("E_3_A______.pdf", copy_status="download-failed: HTTP 500", **eu))
        await store.upsert_file(_record("E_4_A______.pdf", copy_status="pending", **eu))
        failed = await store.failed_downloads(batch, ["RCP_Notice_EU"])
        assert [r.target_name for r in failed] == ["E_3_A______.pdf", "E_4_A______.pdf"]

    @pytest.mark.asyncio
    async def test_update_copy_status(self, store):
        await store.upsert_file(_record(copy_status="pending"))
        await store.update_copy_status("20250718_093012", "R_1_A01AA01.htm", "copied")
        row = await store.get_file("20250718_093012", "R_1_A01AA01.htm")
        assert row.copy_status == "copied"

    @pytest.mark.asyncio
    async def test_status_counts(self, store):
        await store.upsert_file(_record("R_1_A______.htm"))
        await store.upsert_file(_record("R_2_A______.htm"))
        await store.upsert_file(_record("N_1_A______.htm", document_type="Notice", copy_status="source-not-found"))
        counts = await store.status_counts("20250718_093012")
        assert counts == [("Notice", "source-not-found", "", 1), ("RCP", "copied", "", 2)]
