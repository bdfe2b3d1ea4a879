"""Tests for common.config module."""

import pytest

from common.config import ConfigSingleton, find_config_path, load_yaml
from common.errors import ConfigError


class TestFindConfigPath:
    def test_named_config(self, tmp_path) -> None:
        (tmp_path / "local.yaml").write_text("a: 1\n")
        assert find_config_path("local", tmp_path) == tmp_path / "local.yaml"

    def test_default_name(self, tmp_path) -> None:
        (tmp_path / "prod.yaml").write_text("a: 1\n")
        assert find_config_path(None, tmp_path) == tmp_path / "prod.yaml"

    def test_env_var(self, tmp_path, monkeypatch) -> None:
        (tmp_path / "staging.yaml").write_text("a: 1\n")
        monkeypatch.setenv("MY_CONFIG", "staging")
        assert find_config_path(None, tmp_path, env_var="MY_CONFIG") == tmp_path / "staging.yaml"

    def test_explicit_yaml_path(self, tmp_path) -> None:
        path = tmp_path / "elsewhere.yml"
        path.write_text("a: 1\n")
        assert find_config_path(str(path), tmp_path / "configs") == path

    def test_missing_raises(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            find_config_path("missing", tmp_path)


class TestLoadYaml:
    def test_loads_mapping(self, tmp_path) -> None:
        path = tmp_path / "c.yaml"
        path.write_text("feed:\n  batch_size: 10\n")
        assert load_yaml(path) == {"feed": {"batch_size": 10}}

    def test_empty_file_returns_empty_dict(self, tmp_path) -> None:
        path = tmp_path / "c.yaml"
        path.write_text("")
        assert load_yaml(path) == {}

    def test_invalid_yaml_raises_config_error(self, tmp_path) -> None:
        path = tmp_path / "c.yaml"
        path.write_text("feed: [unclosed\n")
        with pytest.raises(ConfigError, match="invalid YAML"):
            load_yaml(path)

    def test_non_mapping_raises_config_error(self, tmp_path) -> None:
        path = tmp_path / "c.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_yaml(path)


class TestConfigSingleton:
    def test_lazy_load_once(self) -> None:
        calls = []

        def loader():
            calls.append(1)
            return {"loaded": True}

        manager = ConfigSingleton(loader)
        assert manager.get() == {"loaded": True}
        assert manager.get() == {"loaded": True}
        assert len(calls) == 1

    def test_set_and_reset(self) -> None:
        manager = ConfigSingleton(lambda: "loaded")
        manager.set("explicit")
        assert manager.get() == "explicit"
        manager.reset()
        assert manager.get() == "loaded"

    def test_no_loader_raises(self) -> None:
        with pytest.raises(RuntimeError):
            ConfigSingleton().get()
