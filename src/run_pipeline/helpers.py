"""Helper functions for the run_pipeline CLI."""

from __future__ import annotations

import argparse
import logging

from common.cli_helpers import positive_int, read_url_file
from common.errors import ConfigError
from dedup_articles.deduplicator import Deduplicator
from dedup_articles.stores import CacheStore, MemoryStore, RedisStore
from enrich_articles.enricher import Enricher
from enrich_articles.nlp import SpacyToolkit
from extract_articles.extractor import Extractor
from fetch_articles.feeds import FeedSource, RssFeedSource, StaticFeedSource
from fetch_articles.fetcher import Fetcher, HttpClient
from fetch_articles.sources import resolve_feed_ids
from index_articles.engines import ElasticsearchEngine, MemorySearchEngine, SearchEngine
from index_articles.indexer import Indexer
from run_pipeline.config import PipelineConfig, get_config
from run_pipeline.coordinator import Coordinator, PoolSizes

logger = logging.getLogger(__name__)


def parse_run_pipeline_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for run_pipeline."""

    parser = argparse.ArgumentParser(
        prog="newsreader",
        description="Fetch, extract, deduplicate, enrich and index news articles",
    )

    # Input options
    parser.add_argument(
        "--config",
        default=None,
        help="Config name in configs/ or path to a YAML file (default: $NEWSREADER_CONFIG or prod)",
    )
    parser.add_argument(
        "--sources",
        default=None,
        help="Comma-separated feed ids or outlet prefixes (default: from config)",
    )
    parser.add_argument("--url", action="append", default=[], help="Process this URL (repeatable)")
    parser.add_argument("--url-file", default=None, help="File with one URL per line")
    parser.add_argument("--lookback-hours", type=positive_int, default=None)
    parser.add_argument("--max-candidates", type=positive_int, default=None)

    # Concurrency options
    parser.add_argument("--fetch-workers", type=positive_int, default=None)
    parser.add_argument("--extract-workers", type=positive_int, default=None)
    parser.add_argument("--enrich-workers", type=positive_int, default=None)
    parser.add_argument("--index-workers", type=positive_int, default=None)

    # Scheduling options
    parser.add_argument("--watch", action="store_true", help="Keep polling feeds until interrupted")
    parser.add_argument(
        "--poll-interval",
        type=positive_int,
        default=300,
        help="Seconds between feed polls with --watch (default: 300)",
    )

    # Output options
    parser.add_argument("--load-s3", action="store_true", help="Upload run outcomes to S3")
    parser.add_argument("--load-local", action="store_true", help="Save run outcomes to a local file")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    return parser.parse_args(argv)


def apply_overrides(config: PipelineConfig, args: argparse.Namespace) -> PipelineConfig:
    """Apply command-line overrides on top of the loaded config."""
    if args.sources:
        config.feed.sources = [s.strip() for s in args.sources.split(",") if s.strip()]
    if args.lookback_hours:
        config.feed.lookback_hours = args.lookback_hours
    for stage in ("fetch", "extract", "enrich", "index"):
        value = getattr(args, f"{stage}_workers")
        if value:
            setattr(config.workers, stage, value)
    return config


def build_feed(config: PipelineConfig, urls: list[str] | None = None, url_file: str | None = None) -> FeedSource:
    """Explicit URLs win over configured RSS feeds."""
    explicit = list(urls or [])
    if url_file:
        explicit.extend(read_url_file(url_file))
    if explicit:
        return StaticFeedSource(explicit)

    try:
        feed_ids = resolve_feed_ids(config.feed.sources)
    except ValueError as e:
        raise ConfigError(str(e)) from e
    logger.info("Polling %d feeds: %s", len(feed_ids), ", ".join(feed_ids))
    return RssFeedSource(
        feed_ids,
        lookback_hours=config.feed.lookback_hours,
        timeout=config.feed.request_timeout,
    )


def build_store(config: PipelineConfig) -> CacheStore:
    if config.dedup.backend == "memory":
        return MemoryStore()
    return RedisStore.from_url(config.dedup.redis_url)


def build_engine(config: PipelineConfig) -> SearchEngine:
    if config.index.backend == "memory":
        return MemorySearchEngine()
    return ElasticsearchEngine.from_url(
        config.index.url,
        config.index.index_name,
        api_key=config.index.api_key,
        request_timeout=config.index.request_timeout,
    )


def check_backends(store: CacheStore, engine: SearchEngine) -> None:
    """Fail fast when the cache or the search engine is unreachable at startup."""
    if not store.ping():
        raise ConfigError("cannot reach the dedup cache store")
    if not engine.ping():
        raise ConfigError("cannot reach the search engine")
    engine.ensure_index()


def build_coordinator(
    config: PipelineConfig | None = None,
    store: CacheStore | None = None,
    engine: SearchEngine | None = None,
) -> Coordinator:
    """Wire every stage from config. Store and engine may be passed in pre-built."""
    config = config or get_config()
    store = store or build_store(config)
    engine = engine or build_engine(config)

    fetcher = Fetcher(
        client=HttpClient(user_agent=config.fetch.user_agent, max_bytes=config.fetch.max_bytes),
        timeout=config.fetch.timeout_seconds,
        max_attempts=config.fetch.max_attempts,
        backoff_base=config.fetch.backoff_base_seconds,
        backoff_max=config.fetch.backoff_max_seconds,
        deadline=config.fetch.deadline_seconds,
    )
    extractor = Extractor(
        min_body_chars=config.extract.min_body_chars,
        deadline=config.extract.deadline_seconds,
        max_workers=config.workers.extract * 2,
    )
    deduplicator = Deduplicator(
        store,
        reservation_ttl=config.dedup.reservation_ttl_seconds,
        committed_ttl=config.dedup.committed_ttl_seconds,
        key_prefix=config.dedup.key_prefix,
    )
    enricher = Enricher(
        SpacyToolkit(
            model=config.enrich.model,
            sentiment_model=config.enrich.sentiment_model,
            max_keyphrases=config.enrich.max_keyphrases,
        ),
        time_budget=config.enrich.time_budget_seconds,
        word_limit=config.enrich.word_limit,
        max_workers=config.workers.enrich * 2,
    )
    indexer = Indexer(
        engine,
        max_attempts=config.index.max_attempts,
        backoff_base=config.index.backoff_base_seconds,
        backoff_max=config.index.backoff_max_seconds,
    )
    pools = PoolSizes(
        fetch=config.workers.fetch,
        extract=config.workers.extract,
        enrich=config.workers.enrich,
        index=config.workers.index,
        queue_size=config.workers.queue_size,
    )
    return Coordinator(
        fetcher, extractor, deduplicator, enricher, indexer,
        pools=pools,
        candidate_ttl=config.feed.candidate_ttl_seconds,
    )
