"""
Module: mes_kernel.models.product
Responsibility: ORM persistence for products and their bill of materials.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A BOM line is either a MATERIAL line (material_id set) or a PRODUCT
      line (child_product_id set, used by multi-level explosion).
    - process_code is stored upper-case; NULL means the line applies to
      every process step.

Audit relevance:
    BOM lines are read-only to the deduction engine.  What was consumed is
    recorded in lot_material_links, not re-derived from the BOM.
"""

from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from mes_kernel.db.base import TrackedBase


class Product(TrackedBase):
    """Finished or semi-finished product master row."""

    __tablename__ = "products"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class BomLine(TrackedBase):
    """One component line of a product's bill of materials."""

    __tablename__ = "bom_lines"

    __table_args__ = (
        Index("idx_bom_line_product_process", "product_id", "process_code"),
    )

    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)

    # MATERIAL | PRODUCT
    item_type: Mapped[str] = mapped_column(String(20), nullable=False, default="MATERIAL")

    material_id: Mapped[int | None] = mapped_column(
        ForeignKey("materials.id"),
        nullable=True,
    )
    child_product_id: Mapped[int | None] = mapped_column(
        ForeignKey("products.id"),
        nullable=True,
    )

    quantity_per_unit: Mapped[Decimal] = mapped_column(nullable=False)
    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    process_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
