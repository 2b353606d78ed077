# tests/integration/logging/test_int_logging_subsystem.py — v1
"""Integration tests for the logging subsystem.

Covers: logging/logger.py, logging/handlers.py, logging/context.py
No Docker required.
"""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from rcpsync.logging.context import (
    clear_context,
    get_context,
    set_batch_context,
    set_document_context,
    set_pipeline_context,
)
from rcpsync.logging.handlers import monthly_log_path
from rcpsync.logging.logger import setup_logging


@pytest.fixture(autouse=True)
def _reset():
    clear_context()
    yield
    root = logging.getLogger("rcpsync")
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.NOTSET)
    clear_context()


class TestContextIsolation:

    @pytest.mark.asyncio
    async def test_pipeline_context_per_task(self):
        set_batch_context("20250718_093012")
        seen: dict[str, str | None] = {}

        async def pipeline(name: str):
            set_pipeline_context(name)
            await asyncio.sleep(0)
            seen[name] = get_context().pipeline

        await asyncio.gather(pipeline("decentralized"), pipeline("centralized"))
        assert seen == {"decentralized": "decentralized", "centralized": "centralized"}
        assert get_context().pipeline is None
        assert get_context().batch_id == "20250718_093012"


class TestFileLogging:

    def test_json_lines_with_context(self, tmp_path):
        base = tmp_path / "rcpsync.log"
        setup_logging(level="INFO", log_format="json", log_file=str(base))
        set_batch_context("20250718_093012")
        set_document_context("R_60446911_B05BB01.htm")

        logging.getLogger("rcpsync.transfer.engine").info("Transferred %s", "x")
        logging.getLogger("rcpsync.transfer.engine").debug("hidden")
        for handler in logging.getLogger("rcpsync").handlers:
            handler.flush()

        lines = monthly_log_path(base).read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["message"] == "Transferred x"
        assert entry["context"]["batch_id"] == "20250718_093012"
        assert entry["context"]["document"] == "R_60446911_B05BB01.htm"
