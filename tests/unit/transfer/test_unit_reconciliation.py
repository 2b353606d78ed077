# tests/unit/transfer/test_unit_reconciliation.py — v1
"""Tests for transfer/reconciliation.py — transfer passes and summary report gating."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from rcpsync.audit.models import REPORT_DOCUMENT_TYPE, FileTransferRecord, TransferStatus
from rcpsync.batch import layout
from rcpsync.core.models import DECENTRALIZED_TYPES, DocumentKind
from rcpsync.throttle.courtesy import NO_DELAY
from rcpsync.transfer.engine import TransferEngine
from rcpsync.transfer.reconciliation import ReconciliationLoop, transfer_bulk_report

BATCH = "20250718_093012"
NAMES = ["R_60000001_A01____.htm", "R_60000002_A01____.htm", "N_60000001_A01____.htm"]


async def _seed(store, root, names=NAMES, write=True):
    layout.create_tree(root)
    await store.create_batch(BATCH, datetime(2025, 7, 18, tzinfo=timezone.utc))
    for name in names:
        kind = DocumentKind.SPC if name.startswith("R") else DocumentKind.LEAFLET
        if write:
            (layout.kind_dir(root, kind) / name).write_text(f"<html>{name}</html>")
        await store.upsert_file(
            FileTransferRecord(
                batch_id=BATCH, target_name=name, document_type=kind.value, copy_status="copied"
            )
        )


@pytest.fixture
def root(tmp_path):
    return tmp_path / layout.root_name(BATCH)


def _loop(store, max_passes=3):
    return ReconciliationLoop(store, TransferEngine(store, "/upload", NO_DELAY), "fr", 2, max_passes)


class TestReconciliationLoop:
    @pytest.mark.asyncio
    async def test_single_pass(self, store, remote, root):
        await _seed(store, root)
        result = await _loop(store).run(remote, BATCH, DECENTRALIZED_TYPES, layout.transfer_resolver(root))
        assert (result.passes, result.remaining_failed) == (1, 0)
        assert sorted(remote.puts) == sorted(
            [
                "/upload/Extract_RCP_20250718/FR/RCP/R_60000001_A01____.htm",
                "/upload/Extract_RCP_20250718/FR/RCP/R_60000002_A01____.htm",
                "/upload/Extract_RCP_20250718/FR/Notices/N_60000001_A01____.htm",
            ]
        )

    @pytest.mark.asyncio
    async def test_transient_failure_converges(self, store, remote, root):
        await _seed(store, root)
        remote.fail_puts[NAMES[1]] = 1
        result = await _loop(store).run(remote, BATCH, DECENTRALIZED_TYPES, layout.transfer_resolver(root))
        assert (result.passes, result.remaining_failed) == (2, 0)
        assert remote.puts.count(f"/upload/Extract_RCP_20250718/FR/RCP/{NAMES[1]}") == 2
        assert (await store.get_file(BATCH, NAMES[1])).transfer_status == TransferStatus.OK.value

    @pytest.mark.asyncio
    async def test_persistent_failure_bounded(self, store, remote, root):
        await _seed(store, root)
        remote.truncate.add(NAMES[0])
        result = await _loop(store, max_passes=3).run(
            remote, BATCH, DECENTRALIZED_TYPES, layout.transfer_resolver(root)
        )
        assert (result.passes, result.remaining_failed) == (3, 1)
        assert remote.puts.count(f"/upload/Extract_RCP_20250718/FR/RCP/{NAMES[0]}") == 3

    @pytest.mark.asyncio
    async def test_missing_local_file_is_terminal(self, store, remote, root):
        await _seed(store, root, write=False)
        result = await _loop(store).run(remote, BATCH, DECENTRALIZED_TYPES, layout.transfer_resolver(root))
        assert (result.passes, result.remaining_failed) == (1, 0)
        assert remote.puts == []
        rows = await store.list_files(BATCH)
        assert {r.transfer_status for r in rows} == {TransferStatus.LOCAL_MISSING.value}

    @pytest.mark.asyncio
    async def test_only_selected_types(self, store, remote, root):
        await _seed(store, root)
        result = await _loop(store).run(remote, BATCH, ["RCP_Notice_EU"], layout.transfer_resolver(root))
        assert result.passes == 0
        assert remote.puts == []


class TestTransferBulkReport:
    @pytest.mark.asyncio
    async def test_blocked_by_failures(self, store, remote, root):
        await _seed(store, root, names=[])
        report = root / "transfer_RcpNotice_summary_20250718_093012.xlsx"
        report.write_bytes(b"xlsx")
        engine = TransferEngine(store, "/upload", NO_DELAY)
        status = await transfer_bulk_report(
            remote, engine, store, BATCH, report, layout.remote_subdir(root), remaining_failed=2
        )
        assert status is None
        assert remote.puts == []
        assert await store.get_file(BATCH, report.name) is None

    @pytest.mark.asyncio
    async def test_no_report(self, store, remote, root):
        engine = TransferEngine(store, "/upload", NO_DELAY)
        status = await transfer_bulk_report(
            remote, engine, store, BATCH, None, layout.remote_subdir(root), remaining_failed=0
        )
        assert status is None

    @pytest.mark.asyncio
    async def test_sent_to_batch_root(self, store, remote, root):
        await _seed(store, root, names=[])
        report = root / "transfer_RcpNotice_summary_20250718_093012.xlsx"
        report.write_bytes(b"xlsx")
        engine = TransferEngine(store, "/upload", NO_DELAY)
        status = await transfer_bulk_report(
            remote, engine, store, BATCH, report, layout.remote_subdir(root), remaining_failed=0
        )
        assert status == TransferStatus.OK.value
        assert remote.puts == [f"/upload/Extract_RCP_20250718/{report.name}"]
        row = await store.get_file(BATCH, report.name)
        assert row.document_type == REPORT_DOCUMENT_TYPE
        assert row.transfer_status == TransferStatus.OK.value
