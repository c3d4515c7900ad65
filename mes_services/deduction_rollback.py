"""
mes_services.deduction_rollback -- Exact reversal of a production lot's stock deductions.

Responsibility:
    Undo every consumption link recorded against a production lot: give
    each link's quantity back to its batch and delete the link.

Architecture position:
    Services -- called by ProductionService.cancel_production, or directly.

Invariants enforced:
    - Exact inverse: ``used_qty`` is decreased by exactly the link
      quantity, including quantities that had driven the batch negative.
      No clamping.
    - Idempotent: a second rollback finds no links and restores nothing.
    - All-or-nothing: the rollback is one unit of work.

Failure modes:
    - RollbackMismatchError (an InvariantViolationError) when a link's
      batch is gone or restoring the link would take ``used_qty`` below
      zero.  Nothing is restored in that case.
"""

from __future__ import annotations

from mes_kernel.domain.dtos import ZERO, RollbackResult
from mes_kernel.exceptions import RollbackMismatchError
from mes_kernel.logging_config import LogContext, get_logger
from mes_kernel.storage.port import StockStore

logger = get_logger("services.rollback")


class DeductionRollback:
    """Reverses consumption links of a production lot."""

    def __init__(self, store: StockStore):
        self._store = store

    def rollback(self, production_lot_id: int) -> RollbackResult:
        """
        Restore every link of the lot to its batch and delete the links.

        Returns:
            RollbackResult with the number of links restored (0 when the
            lot has none).
        """
        restored = 0
        restored_qty = ZERO
        batch_ids: list[int] = []

        with LogContext.bind(production_lot_id=production_lot_id):
            with self._store.unit_of_work():
                for link in self._store.links_for_lot(production_lot_id):
                    batch = self._store.get_batch(link.batch_id, for_update=True)
                    if batch is None:
                        raise RollbackMismatchError(
                            production_lot_id, link.batch_id, link.quantity, None
                        )
                    new_used = batch.used_qty - link.quantity
                    if new_used < 0:
                        raise RollbackMismatchError(
                            production_lot_id, batch.id, link.quantity, batch.used_qty
                        )
                    self._store.set_batch_used(batch.id, new_used)
                    self._store.delete_link(link.id)
                    restored += 1
                    restored_qty += link.quantity
                    if batch.id not in batch_ids:
                        batch_ids.append(batch.id)

            logger.info(
                "deduction_rolled_back",
                extra={
                    "restored_count": restored,
                    "restored_qty": restored_qty,
                    "batch_count": len(batch_ids),
                },
            )

        return RollbackResult(
            production_lot_id=production_lot_id,
            restored_count=restored,
            restored_qty=restored_qty,
            batch_ids=tuple(batch_ids),
        )
