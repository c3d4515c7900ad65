"""
mes_services.production_service -- Production lot lifecycle with stock deduction.

Responsibility:
    Start a production lot under a date-scoped lot number, complete it
    (deducting its BOM against stock) and cancel it (rolling the deduction
    back).  This is the caller of the allocation engine in normal
    operation.

Architecture position:
    Services -- composes BomDeductionOrchestrator and DeductionRollback
    over one StockStore.

Invariants enforced:
    - Lot numbers are ``<PROCESS>-<YYMMDD>-<seq>``, the sequence coming
      from an atomic keyed counter; the date comes from the injected clock.
    - Completion is only allowed from IN_PROGRESS; cancellation from
      IN_PROGRESS or COMPLETED.
    - Completion (deduction + status change) and cancellation (rollback +
      status change) are each a single unit of work.

Failure modes:
    - ProductionLotNotFoundError, ProductNotFoundError on unknown ids.
    - LotStatusError on a disallowed transition.
    - SequenceExhaustedError when the day's counter passes max_sequence.
    - DeductionFailedError when the BOM deduction does not succeed; the
      lot stays IN_PROGRESS and no stock is touched.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from mes_config import get_active_config
from mes_config.schema import EngineSettings
from mes_kernel.domain.clock import Clock, SystemClock
from mes_kernel.domain.dtos import DeductionResult, MaterialHint, RollbackResult
from mes_kernel.domain.records import LotStatus, ProductionLotRecord
from mes_kernel.exceptions import (
    DeductionFailedError,
    InvalidQuantityError,
    LotStatusError,
    ProductionLotNotFoundError,
    ProductNotFoundError,
    SequenceExhaustedError,
)
from mes_kernel.logging_config import LogContext, get_logger
from mes_kernel.storage.port import StockStore
from mes_services.deduction_orchestrator import BomDeductionOrchestrator
from mes_services.deduction_rollback import DeductionRollback

logger = get_logger("services.production")


@dataclass(frozen=True, slots=True)
class CompletionResult:
    lot: ProductionLotRecord
    deduction: DeductionResult | None


@dataclass(frozen=True, slots=True)
class CancellationResult:
    lot: ProductionLotRecord
    rollback: RollbackResult


class ProductionService:
    """Start, complete and cancel production lots."""

    def __init__(
        self,
        store: StockStore,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._settings = settings or get_active_config()
        self._orchestrator = BomDeductionOrchestrator(store, self._clock, self._settings)
        self._rollback = DeductionRollback(store)

    def _require_lot(self, lot_id: int) -> ProductionLotRecord:
        lot = self._store.get_lot(lot_id)
        if lot is None:
            raise ProductionLotNotFoundError(lot_id)
        return lot

    def next_lot_number(self, process_code: str) -> str:
        """Allocate the next lot number for the process on the clock's date."""
        prefix = process_code.upper()
        date_key = self._clock.now().strftime("%y%m%d")
        seq = self._store.next_sequence(prefix, date_key)
        if seq > self._settings.max_sequence:
            raise SequenceExhaustedError(prefix, date_key, self._settings.max_sequence)
        return f"{prefix}-{date_key}-{seq:0{self._settings.sequence_padding}d}"

    def start_production(
        self,
        process_code: str,
        product_id: int | None,
        planned_qty: Decimal,
        parent_lot_id: int | None = None,
        line_code: str | None = None,
    ) -> ProductionLotRecord:
        """Create an IN_PROGRESS lot with a freshly allocated lot number."""
        if planned_qty < 0:
            raise InvalidQuantityError(planned_qty)
        with self._store.unit_of_work():
            if product_id is not None and self._store.get_product(product_id) is None:
                raise ProductNotFoundError(product_id)
            if parent_lot_id is not None:
                self._require_lot(parent_lot_id)
            lot = self._store.add_lot(
                lot_number=self.next_lot_number(process_code),
                process_code=process_code.upper(),
                product_id=product_id,
                planned_qty=planned_qty,
                started_at=self._clock.now(),
                parent_lot_id=parent_lot_id,
                line_code=line_code,
            )
        logger.info(
            "production_started",
            extra={
                "production_lot_id": lot.id,
                "lot_number": lot.lot_number,
                "product_id": product_id,
                "planned_qty": planned_qty,
            },
        )
        return lot

    def complete_production(
        self,
        lot_id: int,
        completed_qty: Decimal,
        defect_qty: Decimal = Decimal("0"),
        hints: Sequence[MaterialHint] = (),
        allow_negative: bool | None = None,
    ) -> CompletionResult:
        """
        Deduct the BOM for ``completed_qty`` and mark the lot COMPLETED.

        Lots without a product are completed without a deduction.
        """
        if completed_qty < 0 or defect_qty < 0:
            raise InvalidQuantityError(min(completed_qty, defect_qty))

        with LogContext.bind(production_lot_id=lot_id):
            with self._store.unit_of_work():
                lot = self._require_lot(lot_id)
                if lot.status != LotStatus.IN_PROGRESS:
                    raise LotStatusError(lot.lot_number, lot.status.value, "complete")

                deduction = None
                if lot.product_id is not None:
                    deduction = self._orchestrator.deduct_for_production(
                        lot.product_id,
                        lot.process_code,
                        completed_qty,
                        hints=hints,
                        allow_negative=allow_negative,
                        production_lot_id=lot.id,
                    )
                    if not deduction.success:
                        raise DeductionFailedError(lot.lot_number, deduction.errors)

                lot = self._store.update_lot(
                    lot.id,
                    status=LotStatus.COMPLETED,
                    completed_qty=completed_qty,
                    defect_qty=defect_qty,
                    completed_at=self._clock.now(),
                )

            logger.info(
                "production_completed",
                extra={
                    "lot_number": lot.lot_number,
                    "completed_qty": completed_qty,
                    "defect_qty": defect_qty,
                    "deducted_qty": deduction.total_deducted if deduction else None,
                },
            )
        return CompletionResult(lot=lot, deduction=deduction)

    def cancel_production(self, lot_id: int) -> CancellationResult:
        """Roll back the lot's stock deductions and mark it CANCELLED."""
        with LogContext.bind(production_lot_id=lot_id):
            with self._store.unit_of_work():
                lot = self._require_lot(lot_id)
                if lot.status == LotStatus.CANCELLED:
                    raise LotStatusError(lot.lot_number, lot.status.value, "cancel")
                rollback = self._rollback.rollback(lot.id)
                lot = self._store.update_lot(lot.id, status=LotStatus.CANCELLED)

            logger.info(
                "production_cancelled",
                extra={
                    "lot_number": lot.lot_number,
                    "restored_count": rollback.restored_count,
                },
            )
        return CancellationResult(lot=lot, rollback=rollback)
