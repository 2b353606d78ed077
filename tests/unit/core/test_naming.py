# tests/unit/core/test_naming.py — v1
"""Tests for core/naming.py — canonical target filenames."""

from __future__ import annotations

import pytest

from rcpsync.core.naming import (
    canonical_filename,
    extension_of,
    kind_prefix_of,
    normalize_classification,
)


class TestNormalizeClassification:
    @pytest.mark.parametrize(
        "code, expected",
        [
            ("B05BB01", "B05BB01"),
            ("B05B", "B05B___"),
            ("B05BB01X", "B05BB01"),
            ("A/B\\C", "ABC____"),
            ("", "_______"),
            (None, "_______"),
            ("N/A", "NA_____"),
        ],
    )
    def test_normalize(self, code, expected):
        assert normalize_classification(code) == expected


class TestCanonicalFilename:
    def test_spc(self):
        assert canonical_filename("R", "60446911", "B05BB01", ".htm") == "R_60446911_B05BB01.htm"

    def test_short_code_padded(self):
        assert canonical_filename("R", "60446911", "B05B", ".htm") == "R_60446911_B05B___.htm"

    def test_extension_without_dot(self):
        assert canonical_filename("E", "1", "A01", "pdf") == "E_1_A01____.pdf"

    def test_no_extension(self):
        assert canonical_filename("N", "1", "A01AA01", "") == "N_1_A01AA01"

    def test_deterministic(self):
        assert canonical_filename("N", "9", "C10", ".htm") == canonical_filename("N", "9", "C10", ".htm")


class TestHelpers:
    def test_extension_of(self):
        assert extension_of("R60446911.htm") == ".htm"
        assert extension_of("noext") == ""

    def test_kind_prefix_of(self):
        assert kind_prefix_of("E_1_A______.pdf") == "E"
        assert kind_prefix_of("") == ""
