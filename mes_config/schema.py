"""
Configuration schema (``mes_config.schema``).

Frozen dataclasses describing the tunables of the allocation and genealogy
engine.  Instances are produced by ``mes_config.loader`` and handed out by
``mes_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class EngineSettings:
    """
    Runtime settings for deduction, tracing and lot numbering.

    Attributes:
        allow_negative_default: Policy used when a caller does not pass
            ``allow_negative`` explicitly.
        max_trace_depth: Default depth bound for genealogy traversal.
        max_bom_depth: Depth bound for multi-level BOM explosion.
        sequence_padding: Zero-padding width of the lot-number counter.
        max_sequence: Last counter value a (prefix, date) key may hand out.
        stock_danger_ratio: Fraction of safe stock below which a material
            is reported as ``danger`` rather than ``warning``.
        database_url: SQLAlchemy URL for the production database.
        checksum: SHA-256 of the source document.
    """

    allow_negative_default: bool = True
    max_trace_depth: int = 10
    max_bom_depth: int = 10
    sequence_padding: int = 4
    max_sequence: int = 9999
    stock_danger_ratio: Decimal = Decimal("0.3")
    database_url: str = "sqlite://"
    checksum: str = ""

    def __post_init__(self) -> None:
        if self.max_trace_depth < 0:
            raise ValueError(f"max_trace_depth must be >= 0, got {self.max_trace_depth}")
        if self.max_bom_depth < 1:
            raise ValueError(f"max_bom_depth must be >= 1, got {self.max_bom_depth}")
        if self.sequence_padding < 1:
            raise ValueError(f"sequence_padding must be >= 1, got {self.sequence_padding}")
        if self.max_sequence < 1:
            raise ValueError(f"max_sequence must be >= 1, got {self.max_sequence}")
        if not (Decimal("0") <= self.stock_danger_ratio <= Decimal("1")):
            raise ValueError(
                f"stock_danger_ratio must be within [0, 1], got {self.stock_danger_ratio}"
            )
