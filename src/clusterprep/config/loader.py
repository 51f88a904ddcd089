# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/config/loader.py

import logging
import os
from pathlib import Path
from typing import Optional

import pydantic
import yaml

from clusterprep.errors import ValidationError
from .models import ClusterprepConfig

log = logging.getLogger("clusterprep")

CONFIG_ENV = "CLUSTERPREP_CONFIG"


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    data = yaml.safe_load(expanded) or {}
    if not isinstance(data, dict):
        raise ValidationError(f"{path}: top-level YAML must be a mapping")
    return data


def find_config_file(explicit: Optional[Path] = None) -> Optional[Path]:
    """
    Locate the config file using this priority:

    1. explicit --config path (must exist)
    2. CLUSTERPREP_CONFIG environment variable
    3. nothing: built-in defaults are used
    """
    if explicit is not None:
        if not explicit.is_file():
            raise ValidationError(f"Config file not found: {explicit}")
        return explicit

    env = os.environ.get(CONFIG_ENV)
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("%s=%s does not exist, using defaults", CONFIG_ENV, env)
    return None


def load_config(path: Optional[str | Path] = None) -> ClusterprepConfig:
    """
    Load and validate the clusterprep config.

    The YAML document is deep-merged over the built-in defaults (roster,
    directives, host paths, probe timeouts) before pydantic validation, so a
    file only needs the keys it wants to change.
    """
    cfg_path = find_config_file(Path(path) if path is not None else None)
    data = ClusterprepConfig().model_dump(mode="json")
    if cfg_path:
        log.debug("Loading config from %s", cfg_path)
        _deep_merge(data, _load_yaml(cfg_path))
    else:
        log.debug("No config file, using built-in defaults")

    try:
        cfg = ClusterprepConfig.model_validate(data)
        cfg.cluster_roster()
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid config: {exc}") from exc
    return cfg
