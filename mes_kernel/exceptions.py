"""
Typed exception hierarchy for the MES kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock deduction reports failures per material.  Callers (the deduction
orchestrator, the production workflow, an API layer) decide what to do
by the exception TYPE and its structured attributes, never by parsing
message text.  Every exception carries a machine-readable ``code``.

    try:
        ledger.consume_stock(material_id, "M-2401", Decimal("40"))
    except InsufficientStockError as e:
        respond(code=e.code, available=e.available_qty)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    MesKernelError (base)
    |
    +-- NotFoundError
    |   +-- MaterialNotFoundError
    |   +-- BatchNotFoundError
    |   +-- ProductNotFoundError
    |   +-- ProductionLotNotFoundError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- InvalidQuantityError
    |
    +-- ProductionError
    |   +-- LotStatusError
    |   +-- DeductionFailedError
    |
    +-- SequenceError
    |   +-- SequenceExhaustedError
    |
    +-- InvariantViolationError
        +-- RollbackMismatchError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                   | When Raised
-----------|------------------------|----------------------------------------------
Not found  | MATERIAL_NOT_FOUND     | Material id/code does not exist
           | BATCH_NOT_FOUND        | Batch label unknown for the material
           | PRODUCT_NOT_FOUND      | Product id does not exist
           | PRODUCTION_LOT_NOT_FOUND | Production lot id/number does not exist
-----------|------------------------|----------------------------------------------
Stock      | INSUFFICIENT_STOCK     | Direct consumption exceeds batch availability
           | INVALID_QUANTITY       | Negative (or zero where forbidden) quantity
-----------|------------------------|----------------------------------------------
Production | LOT_STATUS_INVALID     | Transition not allowed from the lot's status
           | DEDUCTION_FAILED       | Completion aborted, BOM deduction unsuccessful
-----------|------------------------|----------------------------------------------
Sequence   | SEQUENCE_EXHAUSTED     | Date-scoped lot counter passed its limit
-----------|------------------------|----------------------------------------------
Invariant  | INVARIANT_VIOLATION    | Ledger state contradicts recorded links
           | ROLLBACK_MISMATCH      | Restoring a link would drive used below zero

===============================================================================
HANDLING PATTERNS
===============================================================================

* The deduction orchestrator catches ``MesKernelError`` per material and
  records it on that material's result entry, EXCEPT
  ``InvariantViolationError`` which is always re-raised.
* Storage errors (``sqlalchemy.exc.SQLAlchemyError``) are not kernel
  errors and abort the whole unit of work.
"""

from decimal import Decimal


class MesKernelError(Exception):
    """Base exception for all MES kernel errors."""

    code: str = "MES_KERNEL_ERROR"


# =============================================================================
# Not-found errors
# =============================================================================


class NotFoundError(MesKernelError):
    """Base for lookups that found nothing."""

    code: str = "NOT_FOUND"


class MaterialNotFoundError(NotFoundError):
    code: str = "MATERIAL_NOT_FOUND"

    def __init__(self, material_ref: int | str):
        self.material_ref = material_ref
        super().__init__(f"Material not found: {material_ref}")


class BatchNotFoundError(NotFoundError):
    """A batch label (or batch id) does not exist for the material."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, lot_number: str, material_id: int | None = None):
        self.lot_number = lot_number
        self.material_id = material_id
        scope = f" for material {material_id}" if material_id is not None else ""
        super().__init__(f"Batch not found: {lot_number}{scope}")


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class ProductionLotNotFoundError(NotFoundError):
    code: str = "PRODUCTION_LOT_NOT_FOUND"

    def __init__(self, lot_ref: int | str):
        self.lot_ref = lot_ref
        super().__init__(f"Production lot not found: {lot_ref}")


# =============================================================================
# Stock errors
# =============================================================================


class StockError(MesKernelError):
    """Base for stock-level errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Requested quantity exceeds what the batch has available."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        lot_number: str,
        requested_qty: Decimal,
        available_qty: Decimal,
    ):
        self.lot_number = lot_number
        self.requested_qty = requested_qty
        self.available_qty = available_qty
        super().__init__(
            f"Insufficient stock in batch {lot_number}: "
            f"requested {requested_qty}, available {available_qty}"
        )


class InvalidQuantityError(StockError):
    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: Decimal, reason: str = "must not be negative"):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity}: {reason}")


# =============================================================================
# Production errors
# =============================================================================


class ProductionError(MesKernelError):
    """Base for production-lot workflow errors."""

    code: str = "PRODUCTION_ERROR"


class LotStatusError(ProductionError):
    """Operation not allowed for the production lot's current status."""

    code: str = "LOT_STATUS_INVALID"

    def __init__(self, lot_number: str, status: str, operation: str):
        self.lot_number = lot_number
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} production lot {lot_number} in status {status}"
        )


class DeductionFailedError(ProductionError):
    """BOM deduction for a lot completion did not succeed; nothing was written."""

    code: str = "DEDUCTION_FAILED"

    def __init__(self, lot_number: str, errors: tuple[str, ...]):
        self.lot_number = lot_number
        self.errors = errors
        super().__init__(
            f"BOM deduction failed for production lot {lot_number}: " + "; ".join(errors)
        )


# =============================================================================
# Sequence errors
# =============================================================================


class SequenceError(MesKernelError):
    code: str = "SEQUENCE_ERROR"


class SequenceExhaustedError(SequenceError):
    """The date-scoped counter for a prefix has no numbers left."""

    code: str = "SEQUENCE_EXHAUSTED"

    def __init__(self, prefix: str, date_key: str, max_value: int):
        self.prefix = prefix
        self.date_key = date_key
        self.max_value = max_value
        super().__init__(
            f"Sequence {prefix}-{date_key} exhausted (max {max_value})"
        )


# =============================================================================
# Invariant violations (fatal)
# =============================================================================


class InvariantViolationError(MesKernelError):
    """Ledger state contradicts itself. Never converted into a result entry."""

    code: str = "INVARIANT_VIOLATION"


class RollbackMismatchError(InvariantViolationError):
    """Restoring a consumption link would leave the batch inconsistent."""

    code: str = "ROLLBACK_MISMATCH"

    def __init__(
        self,
        production_lot_id: int,
        batch_id: int,
        link_qty: Decimal,
        used_qty: Decimal | None,
    ):
        self.production_lot_id = production_lot_id
        self.batch_id = batch_id
        self.link_qty = link_qty
        self.used_qty = used_qty
        if used_qty is None:
            detail = "batch no longer exists"
        else:
            detail = f"batch used {used_qty} is below link quantity {link_qty}"
        super().__init__(
            f"Cannot roll back production lot {production_lot_id} "
            f"on batch {batch_id}: {detail}"
        )
