"""
Module: mes_kernel.selectors.stock_selector
Responsibility: Per-material stock summary and low-stock listing, derived
    from batch rows on every call.  There are no stored totals.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - available = total - used, summed over every batch of the material,
      including batches driven negative.
    - Status bands: exhausted when available <= 0, danger below
      ``danger_ratio`` of safe stock, warning below safe stock,
      otherwise good.  A zero safe stock never warns.
"""

from __future__ import annotations

from decimal import Decimal

from mes_kernel.domain.dtos import ZERO, StockStatus, StockSummaryRow
from mes_kernel.domain.records import MaterialRecord
from mes_kernel.selectors.base import BaseSelector
from mes_kernel.storage.port import StockStore


class StockSelector(BaseSelector):
    """Stock totals and status per material."""

    def __init__(self, store: StockStore, danger_ratio: Decimal = Decimal("0.3")):
        super().__init__(store)
        self._danger_ratio = danger_ratio

    def classify(self, available: Decimal, safe_stock: Decimal) -> StockStatus:
        if available <= 0:
            return StockStatus.EXHAUSTED
        if available < safe_stock * self._danger_ratio:
            return StockStatus.DANGER
        if available < safe_stock:
            return StockStatus.WARNING
        return StockStatus.GOOD

    def _row(self, material: MaterialRecord) -> StockSummaryRow:
        batches = self.store.batches_for_material(material.id)
        total = sum((b.quantity for b in batches), ZERO)
        used = sum((b.used_qty for b in batches), ZERO)
        available = total - used
        return StockSummaryRow(
            material_id=material.id,
            material_code=material.code,
            material_name=material.name,
            unit=material.unit,
            safe_stock=material.safe_stock,
            total_qty=total,
            used_qty=used,
            available_qty=available,
            batch_count=len(batches),
            status=self.classify(available, material.safe_stock),
        )

    def stock_summary(self) -> list[StockSummaryRow]:
        """One row per active material, ordered by material code."""
        materials = sorted(self.store.list_materials(), key=lambda m: m.code)
        return [self._row(m) for m in materials]

    def material_summary(self, material_id: int) -> StockSummaryRow | None:
        material = self.store.get_material(material_id)
        return self._row(material) if material else None

    def low_stock(self) -> list[StockSummaryRow]:
        """Rows not in GOOD status, most critical first."""
        order = {
            StockStatus.EXHAUSTED: 0,
            StockStatus.DANGER: 1,
            StockStatus.WARNING: 2,
        }
        rows = [r for r in self.stock_summary() if r.status != StockStatus.GOOD]
        return sorted(rows, key=lambda r: (order[r.status], r.material_code))
