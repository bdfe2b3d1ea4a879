"""Data models for the index stage."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class IndexRecord:
    """Wire-ready document keyed by an id derived from the content fingerprint."""
    document_id: str
    body: dict[str, Any]


@dataclass(frozen=True)
class IndexResult:
    document_id: str
    result: str
