"""S3 output for pipeline runs."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Sequence

import boto3

from common.local_io import timestamped_filename, to_jsonl

logger = logging.getLogger(__name__)


def get_s3_client():
    return boto3.client("s3")


def build_s3_key(prefix: str, timestamp: datetime, filename: str | None = None) -> str:
    """Date-partitioned key: <prefix>/year=YYYY/month=MM/day=DD/<filename>.

    The filename defaults to the same timestamped name used for local output.
    """
    filename = filename or timestamped_filename(prefix, timestamp)
    return f"{prefix}/year={timestamp.year:04d}/month={timestamp.month:02d}/day={timestamp.day:02d}/{filename}"


def upload_jsonl_to_s3(
    records: Sequence[Mapping[str, Any]],
    bucket: str,
    key: str,
    client=None,
) -> str:
    """Upload records as one JSONL object and return its s3:// URI."""
    s3 = client or get_s3_client()
    s3.put_object(
        Bucket=bucket,
        Key=key,
        Body=to_jsonl(records).encode("utf-8"),
        ContentType="application/jsonl",
    )
    uri = f"s3://{bucket}/{key}"
    logger.info("Uploaded %d records to %s", len(records), uri)
    return uri
