"""
mes_engines.tracer -- Engine invocation tracer emitting MES_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps pure engine calls with a structured trace
    record: engine name and version, a deterministic fingerprint of the
    selected keyword inputs, and the duration.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a log record only; never touches storage.

Invariants enforced:
    - Fingerprints are deterministic: values are canonicalized (dict keys
      sorted, Decimal by string) before hashing with SHA-256, truncated to
      16 hex chars.

Usage:
    from mes_engines.tracer import traced_engine

    @traced_engine("fifo_draw", "1.0", fingerprint_fields=("material_id", "quantity"))
    def plan_fifo_draws(*, material_id, batches, quantity, allow_negative):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

_logger = logging.getLogger("mes_kernel.engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Decimal):
        return str(value.normalize()) if value else "0"
    if isinstance(value, (bool, int, float, str)):
        return str(value)
    if isinstance(value, dict):
        items = sorted(value.items())
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """SHA-256 prefix (16 hex chars) over the named kwargs.

    Missing fields are recorded as "null".
    """
    parts = [f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields]
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits MES_ENGINE_TRACE for pure engine invocations."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                fp = compute_input_fingerprint(fingerprint_fields, kwargs)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                "MES_ENGINE_TRACE",
                extra={
                    "trace_type": "MES_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
