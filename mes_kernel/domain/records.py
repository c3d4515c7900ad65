"""
Records -- immutable snapshots of persisted rows.

Responsibility:
    The storage port speaks in these records, never in ORM entities, so
    engines and services behave identically over the SQLAlchemy adapter and
    the in-memory adapter.  ``from_model()`` converters are only called by
    the SQLAlchemy adapter.

Architecture position:
    Kernel > Domain -- zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mes_kernel.models import (
        BomLine,
        LotMaterialLink,
        Material,
        MaterialBatch,
        Product,
        ProductionLot,
    )


def _qty(value) -> Decimal:
    """Drop the column scale so both adapters report quantities alike."""
    qty = Decimal(value)
    if qty == qty.to_integral_value():
        return qty.quantize(Decimal(1))
    return qty.normalize()


class BomItemType(str, Enum):
    MATERIAL = "MATERIAL"
    PRODUCT = "PRODUCT"


class LotStatus(str, Enum):
    """Production lot lifecycle: IN_PROGRESS -> COMPLETED, either -> CANCELLED."""

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True, slots=True)
class MaterialRecord:
    id: int
    code: str
    name: str
    unit: str = "EA"
    category: str | None = None
    safe_stock: Decimal = Decimal("0")
    is_active: bool = True

    @classmethod
    def from_model(cls, model: Material) -> MaterialRecord:
        return cls(
            id=model.id,
            code=model.code,
            name=model.name,
            unit=model.unit,
            category=model.category,
            safe_stock=_qty(model.safe_stock),
            is_active=model.is_active,
        )


@dataclass(frozen=True, slots=True)
class ProductRecord:
    id: int
    code: str
    name: str
    is_active: bool = True

    @classmethod
    def from_model(cls, model: Product) -> ProductRecord:
        return cls(
            id=model.id,
            code=model.code,
            name=model.name,
            is_active=model.is_active,
        )


@dataclass(frozen=True, slots=True)
class BatchRecord:
    """
    One received batch of a material.

    ``available`` may be negative after an allow-negative overflow.
    """

    id: int
    material_id: int
    lot_number: str
    quantity: Decimal
    used_qty: Decimal
    received_at: datetime
    location: str | None = None

    @property
    def available(self) -> Decimal:
        return self.quantity - self.used_qty

    @classmethod
    def from_model(cls, model: MaterialBatch) -> BatchRecord:
        return cls(
            id=model.id,
            material_id=model.material_id,
            lot_number=model.lot_number,
            quantity=_qty(model.quantity),
            used_qty=_qty(model.used_qty),
            received_at=model.received_at,
            location=model.location,
        )


@dataclass(frozen=True, slots=True)
class BomLineRecord:
    id: int
    product_id: int
    item_type: BomItemType
    quantity_per_unit: Decimal
    material_id: int | None = None
    child_product_id: int | None = None
    unit: str | None = None
    process_code: str | None = None

    @classmethod
    def from_model(cls, model: BomLine) -> BomLineRecord:
        return cls(
            id=model.id,
            product_id=model.product_id,
            item_type=BomItemType(model.item_type),
            quantity_per_unit=_qty(model.quantity_per_unit),
            material_id=model.material_id,
            child_product_id=model.child_product_id,
            unit=model.unit,
            process_code=model.process_code,
        )


@dataclass(frozen=True, slots=True)
class ProductionLotRecord:
    id: int
    lot_number: str
    process_code: str
    product_id: int | None
    status: LotStatus
    started_at: datetime
    planned_qty: Decimal = Decimal("0")
    completed_qty: Decimal = Decimal("0")
    defect_qty: Decimal = Decimal("0")
    parent_lot_id: int | None = None
    line_code: str | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_model(cls, model: ProductionLot) -> ProductionLotRecord:
        return cls(
            id=model.id,
            lot_number=model.lot_number,
            process_code=model.process_code,
            product_id=model.product_id,
            status=LotStatus(model.status),
            started_at=model.started_at,
            planned_qty=_qty(model.planned_qty),
            completed_qty=_qty(model.completed_qty),
            defect_qty=_qty(model.defect_qty),
            parent_lot_id=model.parent_lot_id,
            line_code=model.line_code,
            completed_at=model.completed_at,
        )


@dataclass(frozen=True, slots=True)
class LinkRecord:
    """One allocation step recorded against a production lot."""

    id: int
    production_lot_id: int
    material_id: int
    batch_id: int
    material_lot_no: str
    quantity: Decimal
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: LotMaterialLink) -> LinkRecord:
        return cls(
            id=model.id,
            production_lot_id=model.production_lot_id,
            material_id=model.material_id,
            batch_id=model.batch_id,
            material_lot_no=model.material_lot_no,
            quantity=_qty(model.quantity),
            created_at=model.created_at,
        )
