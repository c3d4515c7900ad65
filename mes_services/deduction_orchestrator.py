"""
mes_services.deduction_orchestrator -- Deduct a production quantity's BOM from stock.

Responsibility:
    For every material the BOM requires, draw the required quantity: first
    from operator-scanned batches (hints), then oldest-first for whatever
    is left.  Collect a per-material outcome and an overall verdict.

Architecture position:
    Services -- composes BomResolver and ConsumptionService over one
    StockStore.  Called by ProductionService on lot completion, or
    directly by callers that deduct outside the lot workflow.

Invariants enforced:
    - The call is one unit of work.  Each material is a nested unit of
      work: a domain error on one material undoes only that material's
      writes and is recorded on its result entry.
    - Overall success is false iff some material ended unfulfilled (or
      errored) while negative stock was disallowed.
    - A hinted draw beyond the batch's availability is refused under
      disallow-negative and flagged as negative_triggered under
      allow-negative.
    - A scanned batch label that does not exist for the material is
      skipped; the oldest-first fallback covers its share.

Failure modes:
    - ProductNotFoundError / InvalidQuantityError from BOM resolution
      abort the call before any write.
    - InvariantViolationError and storage errors (SQLAlchemyError)
      propagate and abort the whole call with no writes left.

Audit relevance:
    Logs ``bom_deduction_completed`` with totals and the production lot id;
    every draw tagged with a lot id is persisted as a consumption link,
    which is what rollback and genealogy read.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from decimal import Decimal

from mes_config import get_active_config
from mes_config.schema import EngineSettings
from mes_kernel.domain.clock import Clock, SystemClock
from mes_kernel.domain.dtos import (
    ZERO,
    BatchDraw,
    DeductionItem,
    DeductionResult,
    MaterialHint,
    MaterialRequirement,
)
from mes_kernel.exceptions import (
    InvalidQuantityError,
    InvariantViolationError,
    MesKernelError,
)
from mes_kernel.logging_config import LogContext, get_logger
from mes_kernel.storage.port import StockStore
from mes_services.bom_service import BomResolver
from mes_services.consumption_service import ConsumptionService

logger = get_logger("services.deduction")


class BomDeductionOrchestrator:
    """
    Deducts BOM materials for a production quantity.

    Contract:
        Receives a StockStore (and optionally Clock and EngineSettings).
        Never commits; the SQLAlchemy adapter works inside the caller's
        transaction.
    """

    def __init__(
        self,
        store: StockStore,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._settings = settings or get_active_config()
        self._resolver = BomResolver(store, self._settings)
        self._consumption = ConsumptionService(store, self._clock)

    def deduct_for_production(
        self,
        product_id: int,
        process_code: str | None,
        production_qty: Decimal,
        hints: Sequence[MaterialHint] = (),
        allow_negative: bool | None = None,
        production_lot_id: int | None = None,
    ) -> DeductionResult:
        """
        Deduct the BOM of ``production_qty`` units of a product.

        Args:
            hints: Scanned batches, applied per material in the given order
                before FIFO covers the remainder.
            allow_negative: Overdraw policy.  None uses the configured default.
            production_lot_id: Lot the consumption is recorded against.
                Without it, stock is drawn but no links are written.

        Returns:
            DeductionResult with one item per required material.
        """
        policy = (
            self._settings.allow_negative_default if allow_negative is None else allow_negative
        )

        with LogContext.bind(production_lot_id=production_lot_id, process_code=process_code):
            requirements = self._resolver.resolve_bom(product_id, process_code, production_qty)

            if not requirements:
                logger.info(
                    "bom_deduction_skipped_empty_bom",
                    extra={"product_id": product_id, "production_qty": production_qty},
                )
                return DeductionResult.create(
                    product_id=product_id,
                    process_code=process_code,
                    production_qty=production_qty,
                    allow_negative=policy,
                    items=[],
                    production_lot_id=production_lot_id,
                )

            hints_by_material: dict[int, list[MaterialHint]] = defaultdict(list)
            for hint in hints:
                hints_by_material[hint.material_id].append(hint)

            items: list[DeductionItem] = []
            with self._store.unit_of_work():
                for req in requirements:
                    items.append(
                        self._deduct_material(
                            req,
                            hints_by_material.get(req.material_id, []),
                            policy,
                            production_lot_id,
                        )
                    )

            result = DeductionResult.create(
                product_id=product_id,
                process_code=process_code,
                production_qty=production_qty,
                allow_negative=policy,
                items=items,
                production_lot_id=production_lot_id,
            )

            logger.info(
                "bom_deduction_completed",
                extra={
                    "product_id": product_id,
                    "production_qty": production_qty,
                    "allow_negative": policy,
                    "success": result.success,
                    "total_required": result.total_required,
                    "total_deducted": result.total_deducted,
                    "material_count": len(items),
                    "error_count": len(result.errors),
                },
            )
            return result

    def _deduct_material(
        self,
        req: MaterialRequirement,
        hints: list[MaterialHint],
        allow_negative: bool,
        production_lot_id: int | None,
    ) -> DeductionItem:
        try:
            with self._store.unit_of_work():
                return self._apply_material(req, hints, allow_negative, production_lot_id)
        except InvariantViolationError:
            raise
        except MesKernelError as exc:
            logger.warning(
                "material_deduction_failed",
                extra={
                    "material_id": req.material_id,
                    "material_code": req.material_code,
                    "required_qty": req.required_qty,
                    "error_code": exc.code,
                    "error": str(exc),
                },
            )
            return DeductionItem(
                material_id=req.material_id,
                material_code=req.material_code,
                material_name=req.material_name,
                required_qty=req.required_qty,
                deducted_qty=ZERO,
                remaining_qty=req.required_qty,
                success=False,
                error=str(exc),
            )

    def _apply_material(
        self,
        req: MaterialRequirement,
        hints: list[MaterialHint],
        allow_negative: bool,
        production_lot_id: int | None,
    ) -> DeductionItem:
        remaining = req.required_qty
        draws: list[BatchDraw] = []
        negative = False
        error: str | None = None

        for hint in hints:
            if remaining <= 0:
                break
            if hint.quantity is not None and hint.quantity < 0:
                raise InvalidQuantityError(hint.quantity, "hint quantity must not be negative")

            batch = self._store.find_batch(req.material_id, hint.lot_number, for_update=True)
            if batch is None:
                error = f"scanned batch {hint.lot_number} not found"
                logger.warning(
                    "hinted_batch_not_found",
                    extra={"material_id": req.material_id, "lot_number": hint.lot_number},
                )
                continue

            available = batch.available
            if hint.quantity:
                use = min(hint.quantity, remaining)
            else:
                use = min(available if available > 0 else remaining, remaining)

            if use > available and not allow_negative:
                error = (
                    f"insufficient stock in batch {hint.lot_number} "
                    f"(available {available}, requested {use})"
                )
                continue

            overflow = use - max(available, ZERO) if use > available else ZERO
            self._store.set_batch_used(batch.id, batch.used_qty + use)
            if production_lot_id is not None:
                self._store.add_link(
                    production_lot_id=production_lot_id,
                    material_id=req.material_id,
                    batch_id=batch.id,
                    material_lot_no=batch.lot_number,
                    quantity=use,
                    created_at=self._clock.now(),
                )
            draws.append(
                BatchDraw(
                    batch_id=batch.id,
                    lot_number=batch.lot_number,
                    quantity=use,
                    overflow_qty=overflow,
                )
            )
            if overflow > 0:
                negative = True
            remaining -= use

        if remaining > 0:
            allocation = self._consumption.consume_fifo(
                req.material_id,
                remaining,
                production_lot_id=production_lot_id,
                allow_negative=allow_negative,
            )
            draws.extend(allocation.draws)
            remaining = allocation.remaining_qty
            if allocation.negative_triggered:
                negative = True

        deducted = req.required_qty - remaining
        success = remaining == 0
        if not success:
            shortage = f"insufficient stock: {remaining} of {req.required_qty} not covered"
            error = f"{error}; {shortage}" if error else shortage

        return DeductionItem(
            material_id=req.material_id,
            material_code=req.material_code,
            material_name=req.material_name,
            required_qty=req.required_qty,
            deducted_qty=deducted,
            remaining_qty=remaining,
            draws=tuple(draws),
            success=success,
            negative_triggered=negative,
            error=error,
        )
