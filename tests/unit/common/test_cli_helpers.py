"""Tests for common.cli_helpers module."""

import argparse

import pytest

from common.cli_helpers import positive_int, read_url_file


class TestPositiveInt:
    def test_accepts_positive(self) -> None:
        assert positive_int("5") == 5

    def test_rejects_zero(self) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            positive_int("0")

    def test_rejects_non_integer(self) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            positive_int("five")


class TestReadUrlFile:
    def test_skips_blanks_and_comments(self, tmp_path) -> None:
        path = tmp_path / "urls.txt"
        path.write_text("# seed list\nhttps://a.example/1\n\n  https://b.example/2  \n")
        assert read_url_file(path) == ["https://a.example/1", "https://b.example/2"]
