"""Hashing utilities."""

import hashlib
import re


def normalize_text(text: str) -> str:
    """Case-fold and collapse whitespace so trivially different copies compare equal."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.casefold()).strip()


def compute_fingerprint(text: str) -> str:
    """Return the SHA-256 hex digest of the normalized text."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def generate_document_id(fingerprint: str) -> str:
    """Generate a stable search document ID from a content fingerprint."""
    return hashlib.sha256(f"document:{fingerprint}".encode()).hexdigest()[:16]
