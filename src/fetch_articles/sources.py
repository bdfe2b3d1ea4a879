"""Known RSS feeds, keyed by feed id.

A feed id names one outlet section; ``resolve_feed_ids`` also accepts an
outlet prefix (``bbc`` selects every ``bbc-*`` feed).
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

RSS_FEEDS: dict[str, str] = {
    "bbc-top": "https://feeds.bbci.co.uk/news/rss.xml",
    "bbc-world": "https://feeds.bbci.co.uk/news/world/rss.xml",
    "bbc-business": "https://feeds.bbci.co.uk/news/business/rss.xml",
    "bbc-technology": "https://feeds.bbci.co.uk/news/technology/rss.xml",
    "guardian-world": "https://www.theguardian.com/world/rss",
    "guardian-business": "https://www.theguardian.com/business/rss",
    "guardian-technology": "https://www.theguardian.com/technology/rss",
    "npr-news": "https://feeds.npr.org/1001/rss.xml",
    "npr-world": "https://feeds.npr.org/1004/rss.xml",
    "sky-world": "https://feeds.skynews.com/feeds/rss/world.xml",
    "sky-business": "https://feeds.skynews.com/feeds/rss/business.xml",
    "fox-world": "https://moxie.foxnews.com/google-publisher/world.xml",
    "fox-politics": "https://moxie.foxnews.com/google-publisher/politics.xml",
    "yahoo-world": "https://news.yahoo.com/rss/world",
    "yahoo-business": "https://news.yahoo.com/rss/business",
}


def resolve_feed_ids(requested: list[str] | None) -> list[str]:
    """Expand requested feed ids and outlet prefixes into known feed ids.

    An empty request (or "all") selects every known feed. Unknown names are
    logged and dropped; a request that matches nothing raises ValueError.
    """
    if not requested or any(name.strip().lower() == "all" for name in requested):
        return list(RSS_FEEDS)

    resolved: list[str] = []
    for name in requested:
        name = name.strip()
        if not name:
            continue
        if name in RSS_FEEDS:
            matches = [name]
        else:
            matches = [feed_id for feed_id in RSS_FEEDS if feed_id.split("-", 1)[0] == name]
        if not matches:
            logger.warning("Unknown feed: %s", name)
        for feed_id in matches:
            if feed_id not in resolved:
                resolved.append(feed_id)

    if not resolved:
        raise ValueError(f"No valid feeds provided. Valid feeds: {', '.join(sorted(RSS_FEEDS))}")
    return resolved
