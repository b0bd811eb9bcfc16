"""Per-repository configuration helpers."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List

import yaml

from .constants import (
    DEFAULT_EXEC_TIMEOUT,
    DEFAULT_GIT_TIMEOUT,
    DEFAULT_HASH_WORKERS,
)
from .context import config_path_for
from .errors import ConfigError
from .matching import IgnoreSpec


@dataclass
class GateConfig:
    """Settings read from .diffgate/config.yaml."""

    exec_timeout: float = DEFAULT_EXEC_TIMEOUT
    hash_workers: int = DEFAULT_HASH_WORKERS
    git_timeout: float = DEFAULT_GIT_TIMEOUT
    ignore: List[str] = field(default_factory=list)

    def ignore_spec(self) -> IgnoreSpec:
        return IgnoreSpec(self.ignore)


def _positive_number(data: dict, key: str, default, kind, path: Path):
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{path}: '{key}' must be a number, got {value!r}")
    if value <= 0:
        raise ConfigError(f"{path}: '{key}' must be greater than zero, got {value!r}")
    return kind(value)


def load_gate_config(root: Path) -> GateConfig:
    """Load configuration from .diffgate/config.yaml if present.

    Args:
        root: Repository root

    Returns:
        GateConfig, with defaults for anything not set

    Raises:
        ConfigError: If the file is not valid YAML or has wrongly typed values
    """
    cfg_path = config_path_for(root)
    if not cfg_path.exists():
        return GateConfig()

    try:
        data = yaml.safe_load(cfg_path.read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot load {cfg_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{cfg_path}: expected a mapping at the top level")

    ignore = data.get("ignore", [])
    if not isinstance(ignore, list) or not all(isinstance(p, str) for p in ignore):
        raise ConfigError(f"{cfg_path}: 'ignore' must be a list of patterns")

    config = GateConfig(
        exec_timeout=_positive_number(data, "exec_timeout", DEFAULT_EXEC_TIMEOUT, float, cfg_path),
        hash_workers=_positive_number(data, "hash_workers", DEFAULT_HASH_WORKERS, int, cfg_path),
        git_timeout=_positive_number(data, "git_timeout", DEFAULT_GIT_TIMEOUT, float, cfg_path),
        ignore=ignore,
    )

    # Surface bad ignore patterns now rather than mid-run
    try:
        config.ignore_spec()
    except ValueError as e:
        raise ConfigError(f"{cfg_path}: invalid ignore pattern: {e}") from e

    return config
