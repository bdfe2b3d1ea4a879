"""CLI for running the article pipeline."""

from __future__ import annotations

import logging
import os
import sys
import time

from dotenv import load_dotenv

from common.aws import build_s3_key, upload_jsonl_to_s3
from common.cli_helpers import setup_logging
from common.errors import ConfigError, PipelineError
from common.local_io import save_jsonl_records_local
from common.serialization import serialize_dataclass
from fetch_articles.feeds import RssFeedSource
from run_pipeline.config import PipelineConfig, load_config, set_config
from run_pipeline.helpers import (
    apply_overrides,
    build_coordinator,
    build_engine,
    build_feed,
    build_store,
    check_backends,
    parse_run_pipeline_args,
)
from run_pipeline.models import PipelineReport

load_dotenv()

logger = logging.getLogger(__name__)


def save_report(report: PipelineReport, config: PipelineConfig, load_local: bool, load_s3: bool) -> None:
    """Write one JSONL record per candidate outcome."""
    if not report.outcomes or not (load_local or load_s3):
        return

    records = [serialize_dataclass(outcome) for outcome in report.outcomes]
    now = report.finished_at or report.started_at
    prefix = config.output.prefix

    if load_s3:
        bucket = os.environ["S3_BUCKET_NAME"]
        upload_jsonl_to_s3(records, bucket, build_s3_key(prefix, now))

    if load_local:
        save_jsonl_records_local(records, prefix, output_dir=config.output.local_dir, timestamp=now)


def main(argv: list[str] | None = None) -> None:
    args = parse_run_pipeline_args(argv)
    setup_logging(args.log_level)

    try:
        config = apply_overrides(load_config(args.config), args)
        set_config(config)
        feed = build_feed(config, urls=args.url, url_file=args.url_file)
        store = build_store(config)
        engine = build_engine(config)
        check_backends(store, engine)
    except (ConfigError, FileNotFoundError, PipelineError) as e:
        logger.error("Startup failed: %s", e)
        sys.exit(1)

    if args.watch and not isinstance(feed, RssFeedSource):
        logger.error("--watch needs RSS feeds, not explicit URLs")
        sys.exit(1)

    coordinator = build_coordinator(config, store=store, engine=engine)
    halted = False
    try:
        while True:
            report = coordinator.run(
                feed,
                batch_size=config.feed.batch_size,
                max_candidates=args.max_candidates,
            )
            save_report(report, config, args.load_local, args.load_s3)
            if report.halted_stages:
                halted = True
                break
            if not args.watch:
                break
            logger.info("Sleeping %ds before the next poll", args.poll_interval)
            time.sleep(args.poll_interval)
            feed.restart()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        coordinator.extractor.close()
        coordinator.enricher.close()

    if halted:
        sys.exit(1)


if __name__ == "__main__":
    main()
