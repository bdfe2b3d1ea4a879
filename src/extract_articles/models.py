"""Data models for the extract stage."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class MainContent:
    """Main article content as returned by an extraction backend."""
    title: str
    body_text: str
    published_at: datetime | None = None
    authors: tuple[str, ...] = ()
    method: str = ""


@dataclass(frozen=True)
class ArticleRecord:
    """Canonical article with a fingerprint of its normalized body text.

    Two records with equal fingerprints are duplicates regardless of URL.
    """
    url: str
    title: str
    body_text: str
    content_fingerprint: str
    published_at: datetime | None = None
    authors: tuple[str, ...] = field(default_factory=tuple)
    extraction_method: str = ""
