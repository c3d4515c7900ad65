"""
Module: mes_kernel.models.material
Responsibility: ORM persistence for raw materials and their received stock
    batches.  A batch is one receipt of a material under a supplier/batch
    label; its ``used_qty`` is the running total drawn by production.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Batch FIFO ordering support: (material_id, received_at) index gives a
      deterministic receipt order (id breaks ties).
    - ``available = quantity - used_qty``.  0 <= used_qty <= quantity holds
      while negative stock is disallowed; with negative stock allowed only
      the overflow-target batch may carry used_qty > quantity.
    - Batches referenced by a consumption link cannot be deleted (FK).

Failure modes:
    - IntegrityError on duplicate material code.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from mes_kernel.db.base import TrackedBase


class Material(TrackedBase):
    """Raw material master row (reference data)."""

    __tablename__ = "materials"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="EA")
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Reorder threshold for the stock summary status
    safe_stock: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class MaterialBatch(TrackedBase):
    """
    One received batch of a material.

    Contract:
        ``quantity`` is the received amount (changed only by an explicit
        stock adjustment).  ``used_qty`` is mutated only by FIFO/hinted
        draws and by deduction rollback.
    """

    __tablename__ = "material_batches"

    __table_args__ = (
        Index("idx_material_batch_fifo", "material_id", "received_at"),
        Index("idx_material_batch_label", "lot_number"),
    )

    material_id: Mapped[int] = mapped_column(
        ForeignKey("materials.id"),
        nullable=False,
    )

    # Supplier / batch label printed on the receipt
    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    used_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    location: Mapped[str | None] = mapped_column(String(50), nullable=True)

    received_at: Mapped[datetime] = mapped_column(nullable=False)
