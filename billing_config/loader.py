"""
Settings loader (``billing_config.loader``).

Responsibility
--------------
Loads the runtime settings YAML into ``billing_config.schema`` dataclasses.
The packaged ``sets/default.yaml`` supplies the defaults; a deployment file
passed to ``load_settings`` is layered over it section by section.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ValueError`` naming it.
"""

from __future__ import annotations

import os
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import (
    DatabaseSettings,
    EnrichmentSettings,
    ProviderSettings,
    RuntimeSettings,
)

_DEFAULT_SETTINGS = Path(__file__).parent / "sets" / "default.yaml"

_SECTIONS = {
    "database": DatabaseSettings,
    "providers": ProviderSettings,
    "enrichment": EnrichmentSettings,
}

_SCALARS = ("config_cache_enabled", "default_locale", "log_level")

ENV_SETTINGS_PATH = "BILLING_SETTINGS"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _build(cls, data: dict[str, Any], section: str):
    allowed = {f.name for f in fields(cls)}
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown settings in [{section}]: {sorted(unknown)}")
    return cls(**data)


def parse_settings(data: dict[str, Any]) -> RuntimeSettings:
    """Build RuntimeSettings from a parsed settings mapping."""
    unknown = set(data) - set(_SECTIONS) - set(_SCALARS)
    if unknown:
        raise ValueError(f"Unknown settings sections: {sorted(unknown)}")
    kwargs: dict[str, Any] = {
        name: _build(cls, data.get(name) or {}, name) for name, cls in _SECTIONS.items()
    }
    for name in _SCALARS:
        if name in data:
            kwargs[name] = data[name]
    return RuntimeSettings(**kwargs)


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def load_settings(path: Path | str | None = None) -> RuntimeSettings:
    """
    Load runtime settings.

    ``path`` (or the file named by $BILLING_SETTINGS) is layered over the
    packaged defaults; with neither, the defaults are returned.
    """
    data = load_yaml_file(_DEFAULT_SETTINGS)
    path = path or os.environ.get(ENV_SETTINGS_PATH)
    if path:
        data = _merge(data, load_yaml_file(Path(path)))
    return parse_settings(data)
