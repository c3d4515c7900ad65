"""
mes_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains settings;
    services built without explicit ``EngineSettings`` call it themselves.
    It reads the YAML document (``MES_CONFIG_PATH`` or the packaged
    ``defaults.yaml``), applies the ``DATABASE_URL`` environment override,
    validates the result and returns a frozen ``EngineSettings``.

Architecture position:
    Configuration.  Sits above ``mes_kernel`` and below ``mes_services``.
    The kernel MUST NEVER import from ``mes_config``.

Failure modes:
    - ``FileNotFoundError`` -- configured path does not exist.
    - ``ValueError`` -- unknown keys or out-of-range values.

Audit relevance:
    Every call emits a ``MES_CONFIG_TRACE`` log entry with the source path
    and checksum, tying deductions to the settings that governed them.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from mes_config.loader import load_yaml_file, parse_engine_settings
from mes_config.schema import EngineSettings

_logger = logging.getLogger("mes_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = ["EngineSettings", "get_active_config", "DEFAULT_CONFIG_PATH"]


def get_active_config(config_path: Path | str | None = None) -> EngineSettings:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Explicit YAML path.  Falls back to ``MES_CONFIG_PATH``,
            then to the packaged defaults.

    Returns:
        Validated, frozen EngineSettings.
    """
    path = Path(config_path or os.environ.get("MES_CONFIG_PATH") or DEFAULT_CONFIG_PATH)
    settings = parse_engine_settings(load_yaml_file(path))

    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        settings = replace(settings, database_url=database_url)

    _logger.info(
        "MES_CONFIG_TRACE",
        extra={
            "trace_type": "MES_CONFIG_TRACE",
            "config_path": str(path),
            "checksum": settings.checksum,
            "allow_negative_default": settings.allow_negative_default,
            "max_trace_depth": settings.max_trace_depth,
        },
    )
    return settings
