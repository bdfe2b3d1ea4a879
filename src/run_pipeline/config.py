"""Configuration loader for the pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from common.config import ConfigSingleton, find_config_path, load_yaml
from common.errors import ConfigError

CONFIG_DIR = Path(__file__).resolve().parents[2] / "configs"
CONFIG_ENV_VAR = "NEWSREADER_CONFIG"


@dataclass
class FeedConfig:
    sources: list[str] = field(default_factory=list)
    lookback_hours: int = 12
    batch_size: int = 50
    request_timeout: float = 30
    candidate_ttl_seconds: float | None = 6 * 3600


@dataclass
class FetchConfig:
    timeout_seconds: float = 10
    max_attempts: int = 3
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 8
    deadline_seconds: float | None = 60
    max_bytes: int | None = 5 * 1024 * 1024
    user_agent: str = "newsreader/1.0 (+article fetcher)"


@dataclass
class ExtractConfig:
    min_body_chars: int = 200
    deadline_seconds: float | None = 20


@dataclass
class DedupConfig:
    backend: str = "redis"  # "redis" or "memory"
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "newsreader:dedup:"
    reservation_ttl_seconds: float = 600
    committed_ttl_seconds: float | None = None


@dataclass
class EnrichConfig:
    model: str = "en_core_web_sm"
    sentiment_model: str | None = "distilbert/distilbert-base-uncased-finetuned-sst-2-english"
    word_limit: int | None = 2000
    max_keyphrases: int = 10
    time_budget_seconds: float | None = 30


@dataclass
class IndexConfig:
    backend: str = "elasticsearch"  # "elasticsearch" or "memory"
    url: str = "http://localhost:9200"
    api_key: str | None = None
    index_name: str = "articles"
    request_timeout: float = 10
    max_attempts: int = 5
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 16


@dataclass
class WorkerConfig:
    fetch: int = 16
    extract: int = 4
    enrich: int = 2
    index: int = 4
    queue_size: int = 64


@dataclass
class OutputConfig:
    local_dir: str = "output"
    prefix: str = "pipeline_outcomes"


@dataclass
class PipelineConfig:
    feed: FeedConfig = field(default_factory=FeedConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    extract: ExtractConfig = field(default_factory=ExtractConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    enrich: EnrichConfig = field(default_factory=EnrichConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    workers: WorkerConfig = field(default_factory=WorkerConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def _build_section(cls, data: Any, name: str):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"config section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"unknown keys in '{name}': {', '.join(sorted(unknown))}")
    return cls(**data)


def parse_config(data: dict | None) -> PipelineConfig:
    """Parse config dictionary into a PipelineConfig, then apply env overrides."""
    data = data or {}
    sections = {f.name: f.default_factory for f in fields(PipelineConfig)}
    unknown = set(data) - set(sections)
    if unknown:
        raise ConfigError(f"unknown config sections: {', '.join(sorted(unknown))}")

    config = PipelineConfig(
        **{name: _build_section(factory, data.get(name), name) for name, factory in sections.items()}
    )
    _apply_env(config)
    validate_config(config)
    return config


def _apply_env(config: PipelineConfig) -> None:
    """Connection strings and credentials come from the environment when set."""
    config.dedup.redis_url = os.environ.get("REDIS_URL", config.dedup.redis_url)
    config.index.url = os.environ.get("ELASTICSEARCH_URL", config.index.url)
    config.index.api_key = os.environ.get("ELASTICSEARCH_API_KEY", config.index.api_key)


def validate_config(config: PipelineConfig) -> None:
    for name in ("fetch", "extract", "enrich", "index"):
        if getattr(config.workers, name) < 1:
            raise ConfigError(f"workers.{name} must be at least 1")
    if config.workers.queue_size < 1:
        raise ConfigError("workers.queue_size must be at least 1")
    if config.fetch.max_attempts < 1 or config.index.max_attempts < 1:
        raise ConfigError("max_attempts must be at least 1")
    if config.fetch.timeout_seconds <= 0:
        raise ConfigError("fetch.timeout_seconds must be positive")
    if config.dedup.reservation_ttl_seconds <= 0:
        raise ConfigError("dedup.reservation_ttl_seconds must be positive")
    if config.feed.batch_size < 1:
        raise ConfigError("feed.batch_size must be at least 1")
    if config.dedup.backend not in ("redis", "memory"):
        raise ConfigError(f"unknown dedup backend: {config.dedup.backend}")
    if config.index.backend not in ("elasticsearch", "memory"):
        raise ConfigError(f"unknown index backend: {config.index.backend}")


def load_config(config_name: str | None = None) -> PipelineConfig:
    """Load configuration from a YAML file.

    Args:
        config_name: Name of a file in configs/ (without .yaml extension) or a
            path to a YAML file. If None, uses NEWSREADER_CONFIG or "prod".

    Returns:
        Loaded PipelineConfig
    """
    path = find_config_path(config_name, CONFIG_DIR, default_name="prod", env_var=CONFIG_ENV_VAR)
    return parse_config(load_yaml(path))


_manager: ConfigSingleton[PipelineConfig] = ConfigSingleton(load_config)
get_config = _manager.get
set_config = _manager.set
reset_config = _manager.reset
