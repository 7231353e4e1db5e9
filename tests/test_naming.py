"""Tests for column name formatting."""

import pytest

from temporal_changes.naming import format_column_name, remove_whitespace


class TestFormatColumnName:
    """Tests for format_column_name."""

    @pytest.mark.parametrize("raw,expected", [
        ("FirstName", "First Name"),
        ("TPSReport", "TPS Report"),
        ("lastName", "last Name"),
        ("PersonID", "Person ID"),
        ("Address Line1", "Address Line1"),
        ("name", "name"),
        ("A", "A"),
        ("", ""),
    ])
    def test_default(self, raw, expected):
        assert format_column_name(raw) == expected

    def test_split_adjacent_caps(self):
        assert format_column_name("TPSReport", preserve_adjacent_caps=False) == "T P S Report"
        assert format_column_name("PersonID", preserve_adjacent_caps=False) == "Person I D"

    def test_disabled_only_removes_whitespace(self):
        assert format_column_name("First Name", enabled=False) == "FirstName"
        assert format_column_name("TPSReport", enabled=False) == "TPSReport"

    def test_whitespace_removed_before_formatting(self):
        assert format_column_name(" First\tName ") == "First Name"

    @pytest.mark.parametrize("raw", ["FirstName", "TPSReport", "ModifiedById", "HTMLPageURL"])
    def test_idempotent(self, raw):
        once = format_column_name(raw)
        assert format_column_name(once) == once

    def test_no_leading_space(self):
        assert not format_column_name("ABC").startswith(" ")
        assert not format_column_name("Abc").startswith(" ")


class TestRemoveWhitespace:
    """Tests for remove_whitespace."""

    def test_removes_all_kinds(self):
        assert remove_whitespace(" a b\tc\nd ") == "abcd"
