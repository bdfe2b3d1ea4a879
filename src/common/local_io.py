"""Local file output for pipeline runs."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)


def timestamped_filename(prefix: str, timestamp: datetime, suffix: str = ".jsonl") -> str:
    """e.g. pipeline_outcomes_2024_03_05_14_07.jsonl"""
    return f"{prefix}_{timestamp.strftime('%Y_%m_%d_%H_%M')}{suffix}"


def to_jsonl(records: Iterable[Mapping[str, Any]]) -> str:
    """One JSON document per line, newline-terminated."""
    return "".join(json.dumps(record, default=str, ensure_ascii=False) + "\n" for record in records)


def save_jsonl_records_local(
    records: list[dict[str, Any]],
    prefix: str,
    output_dir: str = "output",
    timestamp: datetime | None = None,
) -> Path:
    """
    Save already-serialized records to a local JSONL file.

    Args:
        records: List of JSON-ready dicts
        prefix: Filename prefix (e.g., "pipeline_outcomes")
        output_dir: Directory to save to (default: "output")
        timestamp: Timestamp used in the filename (default: now, UTC)

    Returns:
        Path to the created file.
    """
    now = timestamp or datetime.now(timezone.utc)
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    filepath = output_path / timestamped_filename(prefix, now)
    filepath.write_text(to_jsonl(records), encoding="utf-8")

    logger.info("Saved %d records to %s", len(records), filepath)
    return filepath
