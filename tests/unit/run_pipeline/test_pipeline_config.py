"""Tests for run_pipeline.config module."""

import pytest

from common.errors import ConfigError
from run_pipeline.config import (
    PipelineConfig,
    get_config,
    load_config,
    parse_config,
    reset_config,
    set_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("REDIS_URL", "ELASTICSEARCH_URL", "ELASTICSEARCH_API_KEY", "NEWSREADER_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    yield
    reset_config()


class TestParseConfig:
    def test_empty_uses_defaults(self) -> None:
        config = parse_config({})
        assert config == PipelineConfig()
        assert config.workers.fetch == 16
        assert config.workers.extract == 4
        assert config.workers.enrich == 2
        assert config.workers.index == 4

    def test_partial_section_keeps_other_defaults(self) -> None:
        config = parse_config({"fetch": {"max_attempts": 5}})
        assert config.fetch.max_attempts == 5
        assert config.fetch.timeout_seconds == 10

    def test_unknown_section_rejected(self) -> None:
        with pytest.raises(ConfigError, match="unknown config sections"):
            parse_config({"cluster": {}})

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ConfigError, match="unknown keys in 'fetch'"):
            parse_config({"fetch": {"retries": 3}})

    def test_section_must_be_mapping(self) -> None:
        with pytest.raises(ConfigError):
            parse_config({"fetch": [1, 2]})

    def test_env_overrides_connection_settings(self, monkeypatch) -> None:
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
        monkeypatch.setenv("ELASTICSEARCH_URL", "https://es:9200")
        monkeypatch.setenv("ELASTICSEARCH_API_KEY", "secret")

        config = parse_config({})

        assert config.dedup.redis_url == "redis://cache:6379/2"
        assert config.index.url == "https://es:9200"
        assert config.index.api_key == "secret"


class TestValidateConfig:
    @pytest.mark.parametrize(
        "data",
        [
            {"workers": {"fetch": 0}},
            {"workers": {"queue_size": 0}},
            {"fetch": {"max_attempts": 0}},
            {"index": {"max_attempts": 0}},
            {"fetch": {"timeout_seconds": 0}},
            {"dedup": {"reservation_ttl_seconds": 0}},
            {"feed": {"batch_size": 0}},
            {"dedup": {"backend": "memcached"}},
            {"index": {"backend": "solr"}},
        ],
    )
    def test_invalid_values_rejected(self, data) -> None:
        with pytest.raises(ConfigError):
            parse_config(data)


class TestLoadConfig:
    def test_loads_local(self) -> None:
        config = load_config("local")
        assert config.dedup.backend == "memory"
        assert config.index.backend == "memory"
        assert config.enrich.sentiment_model is None
        assert config.feed.sources == ["bbc", "guardian"]

    def test_loads_prod(self) -> None:
        config = load_config("prod")
        assert config.dedup.backend == "redis"
        assert config.index.backend == "elasticsearch"
        assert config.workers.fetch == 16

    def test_env_var_selects_config(self, monkeypatch) -> None:
        monkeypatch.setenv("NEWSREADER_CONFIG", "local")
        assert load_config().dedup.backend == "memory"

    def test_loads_explicit_path(self, tmp_path) -> None:
        path = tmp_path / "custom.yaml"
        path.write_text("workers:\n  enrich: 3\n")
        assert load_config(str(path)).workers.enrich == 3

    def test_missing_config_raises(self) -> None:
        with pytest.raises(FileNotFoundError):
            load_config("does-not-exist")


class TestConfigManager:
    def test_set_and_get(self) -> None:
        config = parse_config({"feed": {"batch_size": 5}})
        set_config(config)
        assert get_config() is config
