"""
StockStore -- storage port for the allocation and genealogy engine.

Responsibility:
    Declares every read and write the stock ledger, BOM resolver, FIFO
    consumption engine, deduction orchestrator, rollback, genealogy tracer
    and production workflow need.  Services depend on this protocol only.

Architecture position:
    Kernel > Storage.  Implementations:
        - ``SqlAlchemyStockStore`` (mes_kernel.storage.sqlalchemy_store)
        - ``InMemoryStockStore`` (mes_kernel.storage.memory_store)

Invariants enforced:
    - ``unit_of_work()`` is nestable.  Leaving a unit of work by exception
      undoes every write made inside it (and only those); the exception
      propagates.  Normal exit keeps the writes, subject to any enclosing
      unit of work and, for the SQLAlchemy adapter, to the caller's commit.
    - Batch listings are in receipt order: received_at ascending, id
      ascending as tie-break.
    - Link listings are in creation order (id ascending).
    - ``next_sequence`` is an atomic increment-and-read of a keyed counter.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from mes_kernel.domain.records import (
    BatchRecord,
    BomItemType,
    BomLineRecord,
    LinkRecord,
    MaterialRecord,
    ProductionLotRecord,
    ProductRecord,
)

# Fields of a production lot that may change after creation
MUTABLE_LOT_FIELDS = frozenset({
    "status",
    "completed_qty",
    "defect_qty",
    "completed_at",
    "parent_lot_id",
    "line_code",
})


@runtime_checkable
class StockStore(Protocol):
    """Protocol for stock, BOM, lot and link persistence."""

    def unit_of_work(self) -> AbstractContextManager[StockStore]:
        """Atomic scope; writes inside are undone if the block raises."""
        ...

    # -- reference data ------------------------------------------------------

    def add_material(
        self,
        *,
        code: str,
        name: str,
        unit: str = "EA",
        category: str | None = None,
        safe_stock: Decimal = Decimal("0"),
    ) -> MaterialRecord: ...

    def get_material(self, material_id: int) -> MaterialRecord | None: ...

    def find_material_by_code(self, code: str) -> MaterialRecord | None: ...

    def list_materials(self, active_only: bool = True) -> list[MaterialRecord]: ...

    def add_product(self, *, code: str, name: str) -> ProductRecord: ...

    def get_product(self, product_id: int) -> ProductRecord | None: ...

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
    ) -> BomLineRecord: ...

    def bom_lines(
        self,
        product_id: int,
        process_code: str | None = None,
    ) -> list[BomLineRecord]:
        """Lines of the product; exact process-code match when one is given."""
        ...

    # -- batches -------------------------------------------------------------

    def add_batch(
        self,
        *,
        material_id: int,
        lot_number: str,
        quantity: Decimal,
        received_at: datetime,
        location: str | None = None,
    ) -> BatchRecord: ...

    def get_batch(self, batch_id: int, for_update: bool = False) -> BatchRecord | None: ...

    def find_batch(
        self,
        material_id: int,
        lot_number: str,
        for_update: bool = False,
    ) -> BatchRecord | None:
        """Earliest-received batch of the material carrying the label."""
        ...

    def batches_for_material(
        self,
        material_id: int,
        for_update: bool = False,
    ) -> list[BatchRecord]: ...

    def batches_by_label(self, lot_number: str) -> list[BatchRecord]: ...

    def list_batches(self, location: str | None = None) -> list[BatchRecord]: ...

    def set_batch_used(self, batch_id: int, used_qty: Decimal) -> BatchRecord: ...

    def set_batch_quantity(self, batch_id: int, quantity: Decimal) -> BatchRecord: ...

    # -- production lots -----------------------------------------------------

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
    ) -> ProductionLotRecord: ...

    def get_lot(self, lot_id: int) -> ProductionLotRecord | None: ...

    def find_lot_by_number(self, lot_number: str) -> ProductionLotRecord | None: ...

    def child_lots(self, parent_lot_id: int) -> list[ProductionLotRecord]: ...

    def update_lot(self, lot_id: int, **changes: Any) -> ProductionLotRecord:
        """Apply changes limited to MUTABLE_LOT_FIELDS."""
        ...

    # -- consumption links ---------------------------------------------------

    def add_link(
        self,
        *,
        production_lot_id: int,
        material_id: int,
        batch_id: int,
        material_lot_no: str,
        quantity: Decimal,
        created_at: datetime | None = None,
    ) -> LinkRecord: ...

    def links_for_lot(self, production_lot_id: int) -> list[LinkRecord]: ...

    def links_for_label(self, material_lot_no: str) -> list[LinkRecord]: ...

    def delete_link(self, link_id: int) -> None: ...

    # -- counters ------------------------------------------------------------

    def next_sequence(self, prefix: str, date_key: str) -> int:
        """Increment and return the counter for (prefix, date_key)."""
        ...


def check_lot_changes(changes: dict[str, Any]) -> None:
    """Reject updates to immutable production-lot fields."""
    unknown = set(changes) - MUTABLE_LOT_FIELDS
    if unknown:
        raise ValueError(f"Immutable or unknown production lot fields: {sorted(unknown)}")
