"""
mes_services.consumption_service -- FIFO consumption engine applied to the stock ledger.

Responsibility:
    Draw a quantity of one material across its batches, oldest receipt
    first, and record a consumption link per batch when a production lot
    is given.  Planning is delegated to ``mes_engines.fifo``; this module
    reads batch state under lock and applies the plan.

Architecture position:
    Services -- stateful orchestration over engines + StockStore.
    Called by BomDeductionOrchestrator once per material.

Invariants enforced:
    - One link per batch per call; the allow-negative overflow is merged
      into the last batch's draw (and link) by the planner.
    - No link is written without a production lot id.
    - The whole draw is one unit of work.

Failure modes:
    - InvalidQuantityError on a negative quantity.
    - Storage errors propagate and undo the draw.
"""

from __future__ import annotations

from decimal import Decimal

from mes_engines.fifo import FifoAllocation, plan_fifo_draws
from mes_kernel.domain.clock import Clock, SystemClock
from mes_kernel.exceptions import InvalidQuantityError
from mes_kernel.logging_config import get_logger
from mes_kernel.storage.port import StockStore

logger = get_logger("services.consumption")


class ConsumptionService:
    """Applies FIFO allocations to batch rows and consumption links."""

    def __init__(self, store: StockStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or SystemClock()

    def consume_fifo(
        self,
        material_id: int,
        quantity: Decimal,
        production_lot_id: int | None = None,
        allow_negative: bool = True,
    ) -> FifoAllocation:
        """
        Draw ``quantity`` of a material oldest-receipt-first.

        Postconditions:
            - Every batch in ``allocation.draws`` has ``used_qty`` increased
              by the draw quantity.
            - ``allocation.remaining_qty`` is zero under allow_negative
              unless the material has no batches at all.
        """
        if quantity < 0:
            raise InvalidQuantityError(quantity)

        with self._store.unit_of_work():
            batches = self._store.batches_for_material(material_id, for_update=True)
            allocation = plan_fifo_draws(
                material_id=material_id,
                batches=batches,
                quantity=quantity,
                allow_negative=allow_negative,
            )
            by_id = {b.id: b for b in batches}
            now = self._clock.now()
            for draw in allocation.draws:
                batch = by_id[draw.batch_id]
                self._store.set_batch_used(batch.id, batch.used_qty + draw.quantity)
                if production_lot_id is not None:
                    self._store.add_link(
                        production_lot_id=production_lot_id,
                        material_id=material_id,
                        batch_id=batch.id,
                        material_lot_no=batch.lot_number,
                        quantity=draw.quantity,
                        created_at=now,
                    )

        logger.info(
            "fifo_consumption_completed",
            extra={
                "material_id": material_id,
                "requested_qty": quantity,
                "deducted_qty": allocation.deducted_qty,
                "remaining_qty": allocation.remaining_qty,
                "overflow_qty": allocation.overflow_qty,
                "draw_count": len(allocation.draws),
                "production_lot_id": production_lot_id,
            },
        )
        return allocation
