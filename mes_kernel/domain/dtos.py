"""
DTOs -- request and result objects for the allocation engine.

Responsibility:
    Immutable structures passed into and returned from the stock ledger,
    BOM resolver, deduction orchestrator and rollback.  Plain frozen
    dataclasses with Decimal quantities.

Architecture position:
    Kernel > Domain -- zero I/O, no ORM dependencies.

Failure modes:
    - ValueError on MaterialHint with a blank batch label.
    - ValueError on BatchDraw with a non-positive quantity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class MaterialHint:
    """
    Operator-scanned batch to draw from before FIFO.

    ``quantity`` of None (or zero) means "as much as the batch has
    available, up to what is still required".
    """

    material_id: int
    lot_number: str
    quantity: Decimal | None = None

    def __post_init__(self) -> None:
        if not self.lot_number or not self.lot_number.strip():
            raise ValueError("MaterialHint requires a batch label")


@dataclass(frozen=True, slots=True)
class BatchDraw:
    """
    Quantity drawn from one batch in one allocation step.

    ``overflow_qty`` is the part of ``quantity`` that went past the batch's
    availability (non-zero only under allow-negative).
    """

    batch_id: int
    lot_number: str
    quantity: Decimal
    overflow_qty: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"BatchDraw quantity must be positive: {self.quantity}")
        if self.overflow_qty < 0 or self.overflow_qty > self.quantity:
            raise ValueError(
                f"BatchDraw overflow {self.overflow_qty} outside [0, {self.quantity}]"
            )


@dataclass(frozen=True, slots=True)
class MaterialRequirement:
    """Required quantity of one material for a production quantity."""

    material_id: int
    material_code: str
    material_name: str
    quantity_per_unit: Decimal
    required_qty: Decimal
    unit: str | None = None
    process_code: str | None = None


@dataclass(frozen=True, slots=True)
class DeductionItem:
    """Outcome of deducting one BOM material."""

    material_id: int
    material_code: str
    material_name: str
    required_qty: Decimal
    deducted_qty: Decimal
    remaining_qty: Decimal
    draws: tuple[BatchDraw, ...] = ()
    success: bool = False
    negative_triggered: bool = False
    error: str | None = None


@dataclass(frozen=True, slots=True)
class DeductionResult:
    """Outcome of one BOM deduction call."""

    success: bool
    product_id: int
    process_code: str | None
    production_qty: Decimal
    allow_negative: bool
    items: tuple[DeductionItem, ...] = ()
    total_required: Decimal = ZERO
    total_deducted: Decimal = ZERO
    errors: tuple[str, ...] = ()
    production_lot_id: int | None = None

    @classmethod
    def create(
        cls,
        *,
        product_id: int,
        process_code: str | None,
        production_qty: Decimal,
        allow_negative: bool,
        items: list[DeductionItem],
        production_lot_id: int | None = None,
    ) -> DeductionResult:
        """Aggregate per-material items into the call result.

        Overall success is false iff some material failed while negative
        stock was disallowed.  Only those failures contribute an error line;
        the per-item ``error`` carries the detail either way.
        """
        errors: list[str] = []
        success = True
        for item in items:
            if item.success:
                continue
            if not allow_negative:
                errors.append(f"{item.material_code}: {item.error or 'deduction failed'}")
                success = False
        return cls(
            success=success,
            product_id=product_id,
            process_code=process_code,
            production_qty=production_qty,
            allow_negative=allow_negative,
            items=tuple(items),
            total_required=sum((i.required_qty for i in items), ZERO),
            total_deducted=sum((i.deducted_qty for i in items), ZERO),
            errors=tuple(errors),
            production_lot_id=production_lot_id,
        )


@dataclass(frozen=True, slots=True)
class RollbackResult:
    production_lot_id: int
    restored_count: int
    restored_qty: Decimal = ZERO
    batch_ids: tuple[int, ...] = ()


# =============================================================================
# Stock ledger queries
# =============================================================================


class StockStatus(str, Enum):
    GOOD = "good"
    WARNING = "warning"
    DANGER = "danger"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class StockSummaryRow:
    material_id: int
    material_code: str
    material_name: str
    unit: str
    safe_stock: Decimal
    total_qty: Decimal
    used_qty: Decimal
    available_qty: Decimal
    batch_count: int
    status: StockStatus


@dataclass(frozen=True, slots=True)
class ReceiptRequest:
    material_id: int
    lot_number: str
    quantity: Decimal
    location: str | None = None


@dataclass(frozen=True, slots=True)
class ReceiptFailure:
    lot_number: str
    error: str


@dataclass(frozen=True, slots=True)
class ReceiptBatchResult:
    success_count: int
    failures: tuple[ReceiptFailure, ...] = ()

    @property
    def failure_count(self) -> int:
        return len(self.failures)


@dataclass(frozen=True, slots=True)
class AvailabilityLine:
    material_id: int
    material_code: str
    material_name: str
    required_qty: Decimal
    available_qty: Decimal

    @property
    def shortage(self) -> Decimal:
        return max(ZERO, self.required_qty - self.available_qty)


@dataclass(frozen=True, slots=True)
class AvailabilityReport:
    product_id: int
    process_code: str | None
    production_qty: Decimal
    lines: tuple[AvailabilityLine, ...] = field(default_factory=tuple)

    @property
    def available(self) -> bool:
        return all(line.shortage == 0 for line in self.lines)

    @property
    def shortages(self) -> tuple[AvailabilityLine, ...]:
        return tuple(line for line in self.lines if line.shortage > 0)
