"""
InMemoryStockStore -- StockStore adapter over plain dictionaries.

Responsibility:
    Same contract as SqlAlchemyStockStore without a database.  Used by
    engine-level tests and by callers that simulate a deduction before
    committing to it.

Invariants enforced:
    - Rows are held as frozen records and replaced on every write, so a
      shallow copy of the tables is a complete snapshot.
    - ``unit_of_work()`` snapshots on entry and restores on exception.
      Nesting works because each level keeps its own snapshot.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from mes_kernel.domain.records import (
    BatchRecord,
    BomItemType,
    BomLineRecord,
    LinkRecord,
    LotStatus,
    MaterialRecord,
    ProductionLotRecord,
    ProductRecord,
)
from mes_kernel.logging_config import get_logger
from mes_kernel.storage.port import check_lot_changes

logger = get_logger("storage.memory")

_TABLES = ("materials", "products", "bom_lines", "batches", "lots", "links", "counters")


def _receipt_order(batch: BatchRecord) -> tuple[datetime, int]:
    return (batch.received_at, batch.id)


class InMemoryStockStore:
    """StockStore backed by dictionaries keyed by surrogate id."""

    def __init__(self) -> None:
        self._materials: dict[int, MaterialRecord] = {}
        self._products: dict[int, ProductRecord] = {}
        self._bom_lines: dict[int, BomLineRecord] = {}
        self._batches: dict[int, BatchRecord] = {}
        self._lots: dict[int, ProductionLotRecord] = {}
        self._links: dict[int, LinkRecord] = {}
        self._counters: dict[tuple[str, str], int] = {}
        self._last_id: dict[str, int] = {}

    def _next_id(self, table: str) -> int:
        self._last_id[table] = self._last_id.get(table, 0) + 1
        return self._last_id[table]

    def _snapshot(self) -> dict[str, Any]:
        state = {name: dict(getattr(self, f"_{name}")) for name in _TABLES}
        state["last_id"] = dict(self._last_id)
        return state

    def _restore(self, state: dict[str, Any]) -> None:
        for name in _TABLES:
            setattr(self, f"_{name}", state[name])
        self._last_id = state["last_id"]

    @contextmanager
    def unit_of_work(self) -> Iterator[InMemoryStockStore]:
        state = self._snapshot()
        try:
            yield self
        except BaseException:
            self._restore(state)
            logger.debug("unit_of_work_restored")
            raise

    # =========================================================================
    # Reference data
    # =========================================================================

    def add_material(
        self,
        *,
        code: str,
        name: str,
        unit: str = "EA",
        category: str | None = None,
        safe_stock: Decimal = Decimal("0"),
    ) -> MaterialRecord:
        if self.find_material_by_code(code) is not None:
            raise ValueError(f"Duplicate material code: {code}")
        material = MaterialRecord(
            id=self._next_id("materials"),
            code=code,
            name=name,
            unit=unit,
            category=category,
            safe_stock=Decimal(safe_stock),
        )
        self._materials[material.id] = material
        return material

    def get_material(self, material_id: int) -> MaterialRecord | None:
        return self._materials.get(material_id)

    def find_material_by_code(self, code: str) -> MaterialRecord | None:
        return next((m for m in self._materials.values() if m.code == code), None)

    def list_materials(self, active_only: bool = True) -> list[MaterialRecord]:
        rows = [m for m in self._materials.values() if m.is_active or not active_only]
        return sorted(rows, key=lambda m: m.code)

    def add_product(self, *, code: str, name: str) -> ProductRecord:
        product = ProductRecord(id=self._next_id("products"), code=code, name=name)
        self._products[product.id] = product
        return product

    def get_product(self, product_id: int) -> ProductRecord | None:
        return self._products.get(product_id)

    def add_bom_line(
        self,
        *,
        product_id: int,
        quantity_per_unit: Decimal,
        item_type: BomItemType = BomItemType.MATERIAL,
        material_id: int | None = None,
        child_product_id: int | None = None,
        unit: str | None = None,
        process_code: str | None = None,
    ) -> BomLineRecord:
        line = BomLineRecord(
            id=self._next_id("bom_lines"),
            product_id=product_id,
            item_type=BomItemType(item_type),
            quantity_per_unit=Decimal(quantity_per_unit),
            material_id=material_id,
            child_product_id=child_product_id,
            unit=unit,
            process_code=process_code.upper() if process_code else None,
        )
        self._bom_lines[line.id] = line
        return line

    def bom_lines(
        self,
        product_id: int,
        process_code: str | None = None,
    ) -> list[BomLineRecord]:
        step = process_code.upper() if process_code else None
        return [
            line
            for line in sorted(self._bom_lines.values(), key=lambda l: l.id)
            if line.product_id == product_id
            and (step is None or line.process_code == step)
        ]

    # =========================================================================
    # Batches
    # =========================================================================

    def add_batch(
        self,
        *,
        material_id: int,
        lot_number: str,
        quantity: Decimal,
        received_at: datetime,
        location: str | None = None,
    ) -> BatchRecord:
        batch = BatchRecord(
            id=self._next_id("batches"),
            material_id=material_id,
            lot_number=lot_number,
            quantity=Decimal(quantity),
            used_qty=Decimal("0"),
            received_at=received_at,
            location=location,
        )
        self._batches[batch.id] = batch
        return batch

    def get_batch(self, batch_id: int, for_update: bool = False) -> BatchRecord | None:
        return self._batches.get(batch_id)

    def find_batch(
        self,
        material_id: int,
        lot_number: str,
        for_update: bool = False,
    ) -> BatchRecord | None:
        matches = [
            b for b in self.batches_for_material(material_id) if b.lot_number == lot_number
        ]
        return matches[0] if matches else None

    def batches_for_material(
        self,
        material_id: int,
        for_update: bool = False,
    ) -> list[BatchRecord]:
        rows = [b for b in self._batches.values() if b.material_id == material_id]
        return sorted(rows, key=_receipt_order)

    def batches_by_label(self, lot_number: str) -> list[BatchRecord]:
        rows = [b for b in self._batches.values() if b.lot_number == lot_number]
        return sorted(rows, key=_receipt_order)

    def list_batches(self, location: str | None = None) -> list[BatchRecord]:
        rows = [
            b for b in self._batches.values() if location is None or b.location == location
        ]
        return sorted(rows, key=_receipt_order)

    def _require_batch(self, batch_id: int) -> BatchRecord:
        if batch_id not in self._batches:
            raise KeyError(f"material_batches row {batch_id} does not exist")
        return self._batches[batch_id]

    def set_batch_used(self, batch_id: int, used_qty: Decimal) -> BatchRecord:
        batch = replace(self._require_batch(batch_id), used_qty=Decimal(used_qty))
        self._batches[batch_id] = batch
        return batch

    def set_batch_quantity(self, batch_id: int, quantity: Decimal) -> BatchRecord:
        batch = replace(self._require_batch(batch_id), quantity=Decimal(quantity))
        self._batches[batch_id] = batch
        return batch

    # =========================================================================
    # Production lots
    # =========================================================================

    def add_lot(
        self,
        *,
        lot_number: str,
        process_code: str,
        product_id: int | None,
        planned_qty: Decimal,
        started_at: datetime,
        parent_lot_id: int | None = None,
        line_code: str | None = None,
    ) -> ProductionLotRecord:
        if self.find_lot_by_number(lot_number) is not None:
            raise ValueError(f"Duplicate production lot number: {lot_number}")
        lot = ProductionLotRecord(
            id=self._next_id("lots"),
            lot_number=lot_number,
            process_code=process_code,
            product_id=product_id,
            status=LotStatus.IN_PROGRESS,
            started_at=started_at,
            planned_qty=Decimal(planned_qty),
            parent_lot_id=parent_lot_id,
            line_code=line_code,
        )
        self._lots[lot.id] = lot
        return lot

    def get_lot(self, lot_id: int) -> ProductionLotRecord | None:
        return self._lots.get(lot_id)

    def find_lot_by_number(self, lot_number: str) -> ProductionLotRecord | None:
        return next((l for l in self._lots.values() if l.lot_number == lot_number), None)

    def child_lots(self, parent_lot_id: int) -> list[ProductionLotRecord]:
        rows = [l for l in self._lots.values() if l.parent_lot_id == parent_lot_id]
        return sorted(rows, key=lambda l: l.id)

    def update_lot(self, lot_id: int, **changes: Any) -> ProductionLotRecord:
        check_lot_changes(changes)
        if lot_id not in self._lots:
            raise KeyError(f"production_lots row {lot_id} does not exist")
        if "status" in changes:
            changes["status"] = LotStatus(changes["status"])
        lot = replace(self._lots[lot_id], **changes)
        self._lots[lot_id] = lot
        return lot

    # =========================================================================
    # Consumption links
    # =========================================================================

    def add_link(
        self,
        *,
        production_lot_id: int,
        material_id: int,
        batch_id: int,
        material_lot_no: str,
        quantity: Decimal,
        created_at: datetime | None = None,
    ) -> LinkRecord:
        self._require_batch(batch_id)
        link = LinkRecord(
            id=self._next_id("links"),
            production_lot_id=production_lot_id,
            material_id=material_id,
            batch_id=batch_id,
            material_lot_no=material_lot_no,
            quantity=Decimal(quantity),
            created_at=created_at,
        )
        self._links[link.id] = link
        return link

    def links_for_lot(self, production_lot_id: int) -> list[LinkRecord]:
        rows = [l for l in self._links.values() if l.production_lot_id == production_lot_id]
        return sorted(rows, key=lambda l: l.id)

    def links_for_label(self, material_lot_no: str) -> list[LinkRecord]:
        rows = [l for l in self._links.values() if l.material_lot_no == material_lot_no]
        return sorted(rows, key=lambda l: l.id)

    def delete_link(self, link_id: int) -> None:
        if self._links.pop(link_id, None) is None:
            raise KeyError(f"lot_material_links row {link_id} does not exist")

    # =========================================================================
    # Counters
    # =========================================================================

    def next_sequence(self, prefix: str, date_key: str) -> int:
        key = (prefix, date_key)
        self._counters[key] = self._counters.get(key, 0) + 1
        logger.debug(
            "sequence_allocated",
            extra={"prefix": prefix, "date_key": date_key, "value": self._counters[key]},
        )
        return self._counters[key]

    # =========================================================================
    # Test support
    # =========================================================================

    def remove_batch(self, batch_id: int) -> None:
        """Drop a batch row regardless of links. FOR TESTING ONLY."""
        self._batches.pop(batch_id, None)
