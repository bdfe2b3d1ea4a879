"""Tests for common.hashing module."""

import hashlib

from common.hashing import compute_fingerprint, generate_document_id, normalize_text


class TestNormalizeText:
    def test_casefolds(self) -> None:
        assert normalize_text("Breaking NEWS") == "breaking news"

    def test_collapses_whitespace(self) -> None:
        assert normalize_text("  one\n\ntwo\t three  ") == "one two three"

    def test_empty_returns_empty(self) -> None:
        assert normalize_text("") == ""

    def test_none_returns_empty(self) -> None:
        assert normalize_text(None) == ""


class TestComputeFingerprint:
    def test_is_sha256_of_normalized_text(self) -> None:
        expected = hashlib.sha256("breaking news today".encode("utf-8")).hexdigest()
        assert compute_fingerprint("Breaking News Today") == expected

    def test_equal_after_normalization(self) -> None:
        assert compute_fingerprint("Breaking  News\nToday ") == compute_fingerprint("breaking news today")

    def test_different_text_differs(self) -> None:
        assert compute_fingerprint("one story") != compute_fingerprint("another story")

    def test_length(self) -> None:
        assert len(compute_fingerprint("text")) == 64


class TestGenerateDocumentId:
    def test_deterministic(self) -> None:
        assert generate_document_id("abc") == generate_document_id("abc")

    def test_length(self) -> None:
        assert len(generate_document_id("abc")) == 16

    def test_matches_prefixed_digest(self) -> None:
        expected = hashlib.sha256(b"document:abc").hexdigest()[:16]
        assert generate_document_id("abc") == expected

    def test_different_fingerprints_differ(self) -> None:
        assert generate_document_id("abc") != generate_document_id("abd")
