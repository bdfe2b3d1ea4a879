"""YAML config discovery and a process-wide config holder."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Callable, Generic, TypeVar

import yaml

from common.errors import ConfigError

T = TypeVar("T")

YAML_SUFFIXES = (".yaml", ".yml")


def find_config_path(
    config_name: str | None,
    config_dir: Path,
    default_name: str = "prod",
    env_var: str | None = None,
) -> Path:
    """Resolve a config name or path to an existing YAML file.

    Args:
        config_name: Bare name looked up in `config_dir` (``local`` ->
            ``configs/local.yaml``), or a path ending in .yaml/.yml. When
            None, `env_var` is consulted, then `default_name`.
        config_dir: Directory holding named configs
        default_name: Name used when nothing else is given
        env_var: Environment variable that may hold a name or path

    Raises:
        FileNotFoundError: If the resolved file doesn't exist
    """
    if config_name is None:
        config_name = (os.environ.get(env_var) if env_var else None) or default_name

    if config_name.endswith(YAML_SUFFIXES):
        config_path = Path(config_name)
    else:
        config_path = config_dir / f"{config_name}.yaml"
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    return config_path


def load_yaml(path: Path) -> dict:
    """Load a YAML mapping; an empty file gives {}."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


class ConfigSingleton(Generic[T]):
    """Holds one config instance per process, loaded on first use.

    Example:
        >>> _manager = ConfigSingleton(load_config)
        >>> get_config = _manager.get
        >>> set_config = _manager.set
        >>> reset_config = _manager.reset
    """

    def __init__(self, loader: Callable[[], T] | None = None):
        self._config: T | None = None
        self._loader = loader
        self._lock = threading.Lock()

    def get(self) -> T:
        with self._lock:
            if self._config is None:
                if self._loader is None:
                    raise RuntimeError("No config loaded and no loader set")
                self._config = self._loader()
            return self._config

    def set(self, config: T) -> None:
        with self._lock:
            self._config = config

    def reset(self) -> None:
        """Forget the current config so the next get() reloads it."""
        with self._lock:
            self._config = None
