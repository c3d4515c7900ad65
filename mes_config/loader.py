"""
Configuration Loader (``mes_config.loader``).

Responsibility
--------------
Loads a YAML settings document and parses it into ``EngineSettings``.
Runtime code obtains settings through ``mes_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from mes_config.schema import EngineSettings

_SETTING_NAMES = frozenset(f.name for f in fields(EngineSettings)) - {"checksum"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Returns an empty dict for an empty document.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_decimal(key: str, value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: not a decimal value: {value!r}") from exc


def parse_engine_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Parse the ``engine`` section (or a flat mapping) into EngineSettings.

    Raises:
        ValueError: on unknown keys, wrong types or out-of-range values.
    """
    section = data.get("engine", data)
    if not isinstance(section, dict):
        raise ValueError("engine: expected a mapping")

    unknown = set(section) - _SETTING_NAMES
    if unknown:
        raise ValueError(f"Unknown engine settings: {sorted(unknown)}")

    kwargs: dict[str, Any] = {}
    for key, value in section.items():
        if key == "allow_negative_default":
            if not isinstance(value, bool):
                raise ValueError(f"{key}: expected true/false, got {value!r}")
            kwargs[key] = value
        elif key in ("max_trace_depth", "max_bom_depth", "sequence_padding", "max_sequence"):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{key}: expected an integer, got {value!r}")
            kwargs[key] = value
        elif key == "stock_danger_ratio":
            kwargs[key] = _parse_decimal(key, value)
        elif key == "database_url":
            kwargs[key] = str(value)

    return EngineSettings(checksum=compute_checksum(data), **kwargs)
