"""Feed sources that hand out candidate URLs in batches."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from itertools import islice
from typing import Iterable, Iterator, Protocol

import feedparser
import requests

from common.datetime import ensure_utc, parse_datetime, utc_now
from fetch_articles.models import Candidate
from fetch_articles.sources import RSS_FEEDS

logger = logging.getLogger(__name__)

USER_AGENT = "newsreader/1.0 (RSS reader)"


class FeedSource(Protocol):
    def next_batch(self, limit: int) -> list[Candidate]:
        """Return up to `limit` new candidates; an empty list means exhausted."""


class StaticFeedSource:
    """Serves a fixed list of URLs, e.g. from the command line."""

    def __init__(self, urls: Iterable[str], source_feed_id: str = "static") -> None:
        self._source_feed_id = source_feed_id
        self._pending: Iterator[str] = iter(dict.fromkeys(u.strip() for u in urls if u.strip()))

    def next_batch(self, limit: int) -> list[Candidate]:
        now = utc_now()
        return [
            Candidate(url=url, discovered_at=now, source_feed_id=self._source_feed_id)
            for url in islice(self._pending, limit)
        ]


class RssFeedSource:
    """Polls RSS feeds lazily, one feed at a time, as batches are requested.

    URLs are handed out at most once per source instance. `restart` begins a
    new polling cycle covering entries published since the previous cycle
    started.
    """

    def __init__(
        self,
        feed_ids: list[str],
        lookback_hours: int = 12,
        timeout: float = 30,
        session: requests.Session | None = None,
    ) -> None:
        self.feed_ids = feed_ids
        self.timeout = timeout
        self._session = session or requests.Session()
        self._seen_urls: set[str] = set()
        self._cycle_started = utc_now()
        self._since = self._cycle_started - timedelta(hours=lookback_hours)
        self._pending = self._iter_candidates(self._since)

    def next_batch(self, limit: int) -> list[Candidate]:
        return list(islice(self._pending, limit))

    def restart(self) -> None:
        """Start a new polling cycle from where the previous one started."""
        self._since = self._cycle_started
        self._cycle_started = utc_now()
        self._pending = self._iter_candidates(self._since)

    def _iter_candidates(self, since: datetime) -> Iterator[Candidate]:
        for feed_id in self.feed_ids:
            feed_url = RSS_FEEDS.get(feed_id)
            if not feed_url:
                logger.warning("Unknown feed: %s", feed_id)
                continue
            try:
                entries = self._fetch_entries(feed_url)
            except (requests.RequestException, ValueError) as e:
                logger.error("Failed to fetch feed %s (%s): %s", feed_id, feed_url, e)
                continue

            found = 0
            for entry in entries:
                candidate = _parse_entry(entry, feed_id, since, self._seen_urls)
                if candidate is not None:
                    found += 1
                    yield candidate
            logger.info("Found %d new articles in feed %s", found, feed_id)

    def _fetch_entries(self, feed_url: str) -> list:
        response = self._session.get(
            feed_url,
            timeout=self.timeout,
            headers={"User-Agent": USER_AGENT},
        )
        response.raise_for_status()
        feed = feedparser.parse(response.content)
        if feed.bozo and not feed.entries:
            raise ValueError(f"unparseable feed: {feed.get('bozo_exception')}")
        return feed.entries


def _parse_entry(entry, feed_id: str, since: datetime, seen_urls: set[str]) -> Candidate | None:
    """Turn a feed entry into a Candidate, or None if it should be skipped."""
    url = (entry.get("link") or "").strip()
    if not url or url in seen_urls:
        return None

    published_at = parse_datetime(entry.get("published") or entry.get("updated"))
    if published_at is None or published_at <= ensure_utc(since):
        return None

    seen_urls.add(url)
    return Candidate(url=url, discovered_at=utc_now(), source_feed_id=feed_id)
