"""
Run configuration loading.

A YAML file overlays LearningConfig defaults; keyword overrides (typically
CLI options) overlay the file. Keys use the dataclass field names.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from querylearn.errors import ConfigError
from querylearn.models import LearningConfig

logger = logging.getLogger(__name__)


def config_fields() -> Dict[str, dataclasses.Field]:
    return {f.name: f for f in dataclasses.fields(LearningConfig)}


def load_config(path: Optional[Path] = None, **overrides: Any) -> LearningConfig:
    """
    Build a LearningConfig from an optional YAML file and overrides.

    Args:
        path: YAML file with LearningConfig keys
        **overrides: Values that win over the file; None values are ignored

    Returns:
        LearningConfig

    Raises:
        ConfigError: If the file cannot be read or has unknown keys
    """
    values: Dict[str, Any] = {}

    if path is not None:
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Could not read config {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must be a mapping, got {type(data).__name__}")
        values.update(data)
        logger.debug(f"Loaded config from {path}: {sorted(data)}")

    values.update({k: v for k, v in overrides.items() if v is not None})

    unknown = sorted(set(values) - set(config_fields()))
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    if "output_dir" in values:
        values["output_dir"] = Path(values["output_dir"])

    try:
        return LearningConfig(**values)
    except TypeError as e:
        raise ConfigError(f"Invalid config: {e}") from e
