"""Configuration loading with YAML parsing and environment variable expansion."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from creditpulse.config.schema import CreditPulseConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATHS = [
    Path("config.yaml"),
    Path("~/.creditpulse/config.yaml"),
]

# ${VAR} or ${VAR:-fallback}
_ENV_PATTERN = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def _expand_env_vars(value: Any) -> Any:
    """Recursively expand ${ENV_VAR} and ${ENV_VAR:-default} references."""
    if isinstance(value, str):
        return _ENV_PATTERN.sub(
            lambda m: os.environ.get(m.group(1), m.group(2) or ""), value
        )
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    return value


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Merge ``overrides`` into a copy of ``base``, recursing into dicts."""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _find_config_file(explicit_path: str | Path | None = None) -> Path | None:
    """Find the config file to load."""
    if explicit_path is not None:
        path = Path(explicit_path).expanduser()
        if path.exists():
            return path
        logger.warning("Config file not found: %s", path)
        return None

    for candidate in DEFAULT_CONFIG_PATHS:
        resolved = candidate.expanduser()
        if resolved.exists():
            return resolved

    return None


def load_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> CreditPulseConfig:
    """Load and validate configuration.

    Resolution order:
    1. Explicit path argument
    2. config.yaml in current directory
    3. ~/.creditpulse/config.yaml
    4. All defaults (no file needed)

    ``overrides`` are deep-merged on top of the file contents before
    validation. String values may reference ${VAR} or ${VAR:-default}.
    """
    config_path = _find_config_file(path)

    raw: dict[str, Any] = {}
    if config_path is not None:
        logger.info("Loading config from %s", config_path)
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config root must be a mapping: {config_path}")
    else:
        logger.info("No config file found, using defaults")

    if overrides:
        raw = _deep_merge(raw, overrides)

    config = CreditPulseConfig.model_validate(_expand_env_vars(raw))
    logger.debug(
        "Config loaded: version=%d default_model=%s",
        config.version,
        config.scoring.default_model_id,
    )
    return config


def write_example_config(path: str | Path) -> Path:
    """Write the fully-resolved default configuration as YAML."""
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w") as f:
        yaml.safe_dump(
            CreditPulseConfig().model_dump(mode="json"), f, sort_keys=False
        )
    return target


def resolve_path(path_str: str) -> Path:
    """Resolve a path from config, expanding ~ and making absolute."""
    return Path(path_str).expanduser().resolve()
