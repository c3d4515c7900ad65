"""
FIFO draw planning -- pure allocation of a quantity across material batches.

Responsibility:
    Given a material's batches and a quantity, decide how much to draw from
    each batch: oldest receipt first, skipping batches with nothing
    available.  Under allow-negative, whatever cannot be covered is pushed
    onto the LAST batch in receipt order, merged into that batch's draw if
    it already has one.

Architecture position:
    Engines -- pure functional core, zero I/O.  Applied to storage by
    ``mes_services.consumption_service.ConsumptionService``.

Invariants enforced:
    - deducted_qty + remaining_qty == requested_qty.
    - At most one draw per batch in a single allocation.
    - overflow_qty is non-zero only on the last batch in receipt order and
      only when allow_negative is set.
    - With allow_negative unset, no draw exceeds a batch's availability.

Failure modes:
    - ValueError on a negative requested quantity.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from mes_engines.tracer import traced_engine
from mes_kernel.domain.dtos import ZERO, BatchDraw
from mes_kernel.domain.records import BatchRecord
from mes_kernel.logging_config import get_logger

logger = get_logger("engines.fifo")


@dataclass(frozen=True, slots=True)
class FifoAllocation:
    """
    Planned (or applied) draws for one material.

    Attributes:
        draws: Draws in receipt order of the batches.
        deducted_qty: Total drawn, overflow included.
        remaining_qty: Requested quantity left unfulfilled.
        overflow_qty: Part of deducted_qty drawn past availability.
    """

    material_id: int
    requested_qty: Decimal
    draws: tuple[BatchDraw, ...]
    deducted_qty: Decimal
    remaining_qty: Decimal
    overflow_qty: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.deducted_qty + self.remaining_qty != self.requested_qty:
            logger.error(
                "fifo_allocation_unbalanced",
                extra={
                    "material_id": self.material_id,
                    "requested_qty": self.requested_qty,
                    "deducted_qty": self.deducted_qty,
                    "remaining_qty": self.remaining_qty,
                },
            )
            raise ValueError(
                f"Allocation for material {self.material_id} does not balance: "
                f"{self.deducted_qty} + {self.remaining_qty} != {self.requested_qty}"
            )

    @classmethod
    def create(
        cls,
        material_id: int,
        requested_qty: Decimal,
        draws: Sequence[BatchDraw],
    ) -> FifoAllocation:
        deducted = sum((d.quantity for d in draws), ZERO)
        return cls(
            material_id=material_id,
            requested_qty=requested_qty,
            draws=tuple(draws),
            deducted_qty=deducted,
            remaining_qty=requested_qty - deducted,
            overflow_qty=sum((d.overflow_qty for d in draws), ZERO),
        )

    @property
    def is_fulfilled(self) -> bool:
        return self.remaining_qty == 0

    @property
    def negative_triggered(self) -> bool:
        return self.overflow_qty > 0


def receipt_order(batches: Sequence[BatchRecord]) -> list[BatchRecord]:
    """Batches sorted oldest receipt first, id breaking ties."""
    return sorted(batches, key=lambda b: (b.received_at, b.id))


@traced_engine(
    "fifo_draw",
    "1.0",
    fingerprint_fields=("material_id", "quantity", "allow_negative"),
)
def plan_fifo_draws(
    *,
    material_id: int,
    batches: Sequence[BatchRecord],
    quantity: Decimal,
    allow_negative: bool,
) -> FifoAllocation:
    """
    Plan draws of ``quantity`` across ``batches`` oldest-first.

    Edge cases:
        - quantity == 0: empty allocation.
        - no batches: nothing drawn, everything remains, even under
          allow_negative (there is no batch to absorb the overflow).
    """
    if quantity < 0:
        raise ValueError(f"Cannot draw a negative quantity: {quantity}")

    ordered = receipt_order(batches)
    remaining = quantity
    draws: list[BatchDraw] = []

    for batch in ordered:
        if remaining <= 0:
            break
        available = batch.available
        if available <= 0:
            continue
        use = min(available, remaining)
        draws.append(BatchDraw(batch_id=batch.id, lot_number=batch.lot_number, quantity=use))
        remaining -= use

    if remaining > 0 and allow_negative and ordered:
        last = ordered[-1]
        for i, draw in enumerate(draws):
            if draw.batch_id == last.id:
                draws[i] = BatchDraw(
                    batch_id=draw.batch_id,
                    lot_number=draw.lot_number,
                    quantity=draw.quantity + remaining,
                    overflow_qty=draw.overflow_qty + remaining,
                )
                break
        else:
            draws.append(
                BatchDraw(
                    batch_id=last.id,
                    lot_number=last.lot_number,
                    quantity=remaining,
                    overflow_qty=remaining,
                )
            )
        logger.info(
            "fifo_overflow_applied",
            extra={
                "material_id": material_id,
                "batch_id": last.id,
                "overflow_qty": remaining,
            },
        )

    return FifoAllocation.create(material_id, quantity, draws)
