"""
Module: mes_kernel.models.production_lot
Responsibility: ORM persistence for production lots and the consumption links
    that record which material batches fed them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - lot_number is unique.  Its format is opaque to the genealogy tracer.
    - parent_lot_id is NOT guaranteed acyclic; readers must bound traversal.
    - Each LotMaterialLink row is one allocation step of a deduction.  The
      sum of a lot's link quantities per batch equals what that lot drew
      from the batch, which is what rollback restores.

Audit relevance:
    Links are the genealogy edges between material batches and production
    lots.  Rollback deletes them, so a cancelled lot leaves no trace edges.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from mes_kernel.db.base import TrackedBase


class ProductionLot(TrackedBase):
    """A production run of one process step for one product."""

    __tablename__ = "production_lots"

    __table_args__ = (
        Index("idx_production_lot_parent", "parent_lot_id"),
        Index("idx_production_lot_status", "status"),
    )

    lot_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    process_code: Mapped[str] = mapped_column(String(20), nullable=False)
    product_id: Mapped[int | None] = mapped_column(
        ForeignKey("products.id"),
        nullable=True,
    )
    line_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    planned_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    completed_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    defect_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # IN_PROGRESS | COMPLETED | CANCELLED
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="IN_PROGRESS")

    parent_lot_id: Mapped[int | None] = mapped_column(
        ForeignKey("production_lots.id"),
        nullable=True,
    )

    started_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)


class LotMaterialLink(TrackedBase):
    """One allocation step: ``quantity`` of a batch consumed by a production lot."""

    __tablename__ = "lot_material_links"

    __table_args__ = (
        Index("idx_lot_material_link_lot", "production_lot_id"),
        Index("idx_lot_material_link_label", "material_lot_no"),
    )

    production_lot_id: Mapped[int] = mapped_column(
        ForeignKey("production_lots.id"),
        nullable=False,
    )
    material_id: Mapped[int] = mapped_column(ForeignKey("materials.id"), nullable=False)
    batch_id: Mapped[int] = mapped_column(
        ForeignKey("material_batches.id"),
        nullable=False,
    )

    # Denormalised batch label; forward trace starts from it
    material_lot_no: Mapped[str] = mapped_column(String(100), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
