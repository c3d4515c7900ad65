"""
mes_services.stock_ledger -- Receipt, direct consumption and adjustment of material batches.

Responsibility:
    Owns the batch rows of the stock ledger outside of BOM deduction:
    receiving stock (single and bulk), consuming from one named batch,
    adjusting a batch's received quantity, and the batch-level read
    queries used by operators.

Architecture position:
    Services -- stateful orchestration over the StockStore port.

Invariants enforced:
    - Receipts carry a positive quantity and reference an existing material.
    - Direct consumption never drives a batch negative; it raises
      InsufficientStockError instead (negative stock only arises from a
      BOM deduction under allow-negative).
    - Every write goes through ``store.unit_of_work()``.

Failure modes:
    - MaterialNotFoundError, BatchNotFoundError on unknown references.
    - InvalidQuantityError on non-positive receipt/consumption quantities
      or a negative adjusted quantity.
    - InsufficientStockError when a direct consumption exceeds availability.

Usage:
    ledger = StockLedger(SqlAlchemyStockStore(session), clock=SystemClock())
    batch = ledger.receive_stock(material.id, "M-2401-007", Decimal("500"))
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from mes_kernel.domain.clock import Clock, SystemClock
from mes_kernel.domain.dtos import (
    ZERO,
    ReceiptBatchResult,
    ReceiptFailure,
    ReceiptRequest,
)
from mes_kernel.domain.records import BatchRecord, MaterialRecord
from mes_kernel.exceptions import (
    BatchNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    MaterialNotFoundError,
    MesKernelError,
)
from mes_kernel.logging_config import get_logger
from mes_kernel.storage.port import StockStore

logger = get_logger("services.stock_ledger")


class StockLedger:
    """
    Batch-level stock operations.

    Contract:
        Receives a StockStore and a Clock via constructor injection.
        Never commits; the store's caller owns the transaction.
    """

    def __init__(self, store: StockStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or SystemClock()

    def _require_material(self, material_id: int) -> MaterialRecord:
        material = self._store.get_material(material_id)
        if material is None:
            raise MaterialNotFoundError(material_id)
        return material

    # =========================================================================
    # Writes
    # =========================================================================

    def receive_stock(
        self,
        material_id: int,
        lot_number: str,
        quantity: Decimal,
        location: str | None = None,
        received_at: datetime | None = None,
    ) -> BatchRecord:
        """Record a new batch of ``quantity`` under label ``lot_number``."""
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "receipt quantity must be positive")
        with self._store.unit_of_work():
            material = self._require_material(material_id)
            batch = self._store.add_batch(
                material_id=material.id,
                lot_number=lot_number,
                quantity=quantity,
                received_at=received_at or self._clock.now(),
                location=location,
            )
        logger.info(
            "stock_received",
            extra={
                "material_id": material.id,
                "material_code": material.code,
                "batch_id": batch.id,
                "lot_number": lot_number,
                "quantity": quantity,
            },
        )
        return batch

    def receive_stock_batch(self, items: Sequence[ReceiptRequest]) -> ReceiptBatchResult:
        """
        Receive several batches; each receipt succeeds or fails on its own.

        A failed receipt is recorded with its error message and does not
        affect the others.
        """
        success = 0
        failures: list[ReceiptFailure] = []
        for item in items:
            try:
                self.receive_stock(
                    item.material_id,
                    item.lot_number,
                    item.quantity,
                    location=item.location,
                )
                success += 1
            except MesKernelError as exc:
                failures.append(ReceiptFailure(lot_number=item.lot_number, error=str(exc)))
        logger.info(
            "stock_receipt_batch_completed",
            extra={"success_count": success, "failure_count": len(failures)},
        )
        return ReceiptBatchResult(success_count=success, failures=tuple(failures))

    def consume_stock(
        self,
        material_id: int,
        lot_number: str,
        quantity: Decimal,
        production_lot_id: int | None = None,
    ) -> BatchRecord:
        """
        Consume from one named batch.

        Raises:
            BatchNotFoundError: no batch of the material has the label.
            InsufficientStockError: quantity exceeds the batch's availability.
        """
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "consumption quantity must be positive")
        with self._store.unit_of_work():
            batch = self._store.find_batch(material_id, lot_number, for_update=True)
            if batch is None:
                raise BatchNotFoundError(lot_number, material_id)
            if quantity > batch.available:
                raise InsufficientStockError(lot_number, quantity, batch.available)
            updated = self._store.set_batch_used(batch.id, batch.used_qty + quantity)
            if production_lot_id is not None:
                self._store.add_link(
                    production_lot_id=production_lot_id,
                    material_id=material_id,
                    batch_id=batch.id,
                    material_lot_no=lot_number,
                    quantity=quantity,
                    created_at=self._clock.now(),
                )
        logger.info(
            "stock_consumed",
            extra={
                "material_id": material_id,
                "batch_id": batch.id,
                "lot_number": lot_number,
                "quantity": quantity,
                "production_lot_id": production_lot_id,
            },
        )
        return updated

    def adjust_stock(self, batch_id: int, new_quantity: Decimal) -> BatchRecord:
        """Set a batch's received quantity (stock count correction)."""
        if new_quantity < 0:
            raise InvalidQuantityError(new_quantity)
        with self._store.unit_of_work():
            batch = self._store.get_batch(batch_id, for_update=True)
            if batch is None:
                raise BatchNotFoundError(str(batch_id))
            updated = self._store.set_batch_quantity(batch_id, new_quantity)
        logger.info(
            "stock_adjusted",
            extra={
                "batch_id": batch_id,
                "previous_qty": batch.quantity,
                "new_qty": new_quantity,
            },
        )
        return updated

    # =========================================================================
    # Queries
    # =========================================================================

    def batches_for_material(self, material_id: int) -> list[BatchRecord]:
        """All batches of the material, oldest receipt first."""
        return self._store.batches_for_material(material_id)

    def batches_by_label(self, lot_number: str) -> list[BatchRecord]:
        return self._store.batches_by_label(lot_number)

    def available_qty(self, material_id: int) -> Decimal:
        """Sum of availability over all batches (negative when overdrawn)."""
        return sum(
            (b.available for b in self._store.batches_for_material(material_id)),
            ZERO,
        )

    def available_batches(self, material_id: int) -> list[BatchRecord]:
        """Batches with something left to draw, oldest receipt first."""
        return [b for b in self._store.batches_for_material(material_id) if b.available > 0]

    def batches_at(self, location: str) -> list[BatchRecord]:
        return self._store.list_batches(location=location)

    def locations(self) -> list[str]:
        """Distinct storage locations holding at least one batch."""
        return sorted({b.location for b in self._store.list_batches() if b.location})
