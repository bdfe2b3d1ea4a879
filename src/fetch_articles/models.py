"""Data models for the fetch stage."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Candidate:
    """A URL discovered by a feed, waiting to be processed."""
    url: str
    discovered_at: datetime
    source_feed_id: str


@dataclass(frozen=True)
class RawDocument:
    """Raw HTTP response body for a candidate URL."""
    url: str
    fetched_at: datetime
    http_status: int
    body_bytes: bytes
    final_url: str | None = None
    encoding: str | None = None


@dataclass(frozen=True)
class HttpResponse:
    """What the HTTP client boundary hands back to the fetcher."""
    status: int
    body: bytes
    final_url: str
    encoding: str | None = None
