"""
SqlAlchemyStockStore -- StockStore adapter over a SQLAlchemy Session.

Responsibility:
    Implements the storage port against the ORM models.  Returns immutable
    records, never ORM entities.

Architecture position:
    Kernel > Storage.  Imports models, domain records and SequenceService.

Invariants enforced:
    - Flush only.  The adapter never commits; the caller's session_scope()
      (or test fixture) owns the outer transaction.
    - ``unit_of_work()`` maps to ``Session.begin_nested()`` (SAVEPOINT),
      so nested units roll back independently.
    - ``for_update=True`` reads use ``SELECT ... FOR UPDATE`` with
      ``populate_existing`` so concurrent deductions on the same batches
      serialize instead of losing updates.

Failure modes:
    - SQLAlchemyError propagates unchanged.
    - KeyError when mutating a row id that does not exist.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from mes_kernel.domain.records import (
    BatchRecord,
    BomItemType,
    BomLineRecord,
    LinkRecord,
    LotStatus,
    MaterialRecord,
    ProductionLotRecord,
    ProductRecord,
)
from mes_kernel.logging_config import get_logger
from mes_kernel.models import (
    BomLine,
    LotMaterialLink,
    Material,
    MaterialBatch,
    Product,
    ProductionLot,
)
from mes_kernel.services.sequence_service import SequenceService
from mes_kernel.storage.port import check_lot_changes

logger = get_logger("storage.sqlalchemy")


class SqlAlchemyStockStore:
    """StockStore backed by a SQLAlchemy session (PostgreSQL or SQLite)."""

    def __init__(self, session: Session):
        self._session = session
        self._sequences = SequenceService(session)

    @property
    def session(self) -> Session:
        return self._session

    @contextmanager
    def unit_of_work(self) -> Iterator[SqlAlchemyStockStore]:
        try:
            with self._session.begin_nested():
                yield self
        except BaseException:
            logger.debug("unit_of_work_rolled_back")
            raise

    # =========================================================================
    # Reference data
    # =========================================================================

    def add_material(
        self,
        *,
        code: str,
        name: str,
        unit: str = "EA",
        category: str | None = None,
        safe_stock: Decimal = Decimal("0"),
    ) -> MaterialRecord:
        material = Material(
            code=code,
            name=name,
            unit=unit,
            category=category,
            safe_stock=safe_stock,
            is_active=True,
        )
        self._session.add(material)
        self._session.flush()
        return MaterialRecord.from_model(material)

    def get_material(self, material_id: int) -> MaterialRecord | None:
        material = self._session.get(Material, material_id)
        return MaterialRecord.from_model(material) if material else None

    def find_material_by_code(self, code: str) -> MaterialRecord | None:
        material = self._session.execute(
            select(Material).where(Material.code == code)
        ).scalar_one_or_none()
        return MaterialRecord.from_model(material) if material else None

    def list_materials(self, active_only: bool = True) -> list[MaterialRecord]:
        stmt = select(Material).order_by(Material.code)
        if active_only:
            stmt = stmt.where(Material.is_active.is_(True))
        return [MaterialRecord.from_model(m) for m in self._session.scalars(stmt)]

    def add_product(self, *, code: str, name: str) -> ProductRecord:
        product = Product(code=code, name=name, is_active=True)
        self._session.add(product)
        self._session.flush()
        return ProductRecord.from_model(product)

    def get_product(self, product_id: int) -> ProductRecord | None:
        product = self._session.get(Product, product_id)
        return ProductRecord.from_model(product) if product else None

    def add_bom_line(
        self,
        *,
        product_id: int,
        quantity_per_unit: Decimal,
        item_type: BomItemType = BomItemType.MATERIAL,
        material_id: int | None = None,
        child_product_id: int | None = None,
        unit: str | None = None,
        process_code: str | None = None,
    ) -> BomLineRecord:
        line = BomLine(
            product_id=product_id,
            item_type=BomItemType(item_type).value,
            material_id=material_id,
            child_product_id=child_product_id,
            quantity_per_unit=quantity_per_unit,
            unit=unit,
            process_code=process_code.upper() if process_code else None,
        )
        self._session.add(line)
        self._session.flush()
        return BomLineRecord.from_model(line)

    def bom_lines(
        self,
        product_id: int,
        process_code: str | None = None,
    ) -> list[BomLineRecord]:
        stmt = select(BomLine).where(BomLine.product_id == product_id)
        if process_code:
            stmt = stmt.where(BomLine.process_code == process_code.upper())
        stmt = stmt.order_by(BomLine.id)
        return [BomLineRecord.from_model(line) for line in self._session.scalars(stmt)]

    # =========================================================================
    # Batches
    # =========================================================================

    def add_batch(
        self,
        *,
        material_id: int,
        lot_number: str,
        quantity: Decimal,
        received_at: datetime,
        location: str | None = None,
    ) -> BatchRecord:
        batch = MaterialBatch(
            material_id=material_id,
            lot_number=lot_number,
            quantity=quantity,
            used_qty=Decimal("0"),
            location=location,
            received_at=received_at,
        )
        self._session.add(batch)
        self._session.flush()
        return BatchRecord.from_model(batch)

    def _batch_query(self, for_update: bool):
        stmt = select(MaterialBatch)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return stmt

    def get_batch(self, batch_id: int, for_update: bool = False) -> BatchRecord | None:
        batch = self._session.execute(
            self._batch_query(for_update).where(MaterialBatch.id == batch_id)
        ).scalar_one_or_none()
        return BatchRecord.from_model(batch) if batch else None

    def find_batch(
        self,
        material_id: int,
        lot_number: str,
        for_update: bool = False,
    ) -> BatchRecord | None:
        batch = self._session.execute(
            self._batch_query(for_update)
            .where(
                MaterialBatch.material_id == material_id,
                MaterialBatch.lot_number == lot_number,
            )
            .order_by(MaterialBatch.received_at, MaterialBatch.id)
            .limit(1)
        ).scalar_one_or_none()
        return BatchRecord.from_model(batch) if batch else None

    def batches_for_material(
        self,
        material_id: int,
        for_update: bool = False,
    ) -> list[BatchRecord]:
        rows = self._session.scalars(
            self._batch_query(for_update)
            .where(MaterialBatch.material_id == material_id)
            .order_by(MaterialBatch.received_at, MaterialBatch.id)
        )
        return [BatchRecord.from_model(b) for b in rows]

    def batches_by_label(self, lot_number: str) -> list[BatchRecord]:
        rows = self._session.scalars(
            select(MaterialBatch)
            .where(MaterialBatch.lot_number == lot_number)
            .order_by(MaterialBatch.received_at, MaterialBatch.id)
        )
        return [BatchRecord.from_model(b) for b in rows]

    def list_batches(self, location: str | None = None) -> list[BatchRecord]:
        stmt = select(MaterialBatch)
        if location is not None:
            stmt = stmt.where(MaterialBatch.location == location)
        stmt = stmt.order_by(MaterialBatch.received_at, MaterialBatch.id)
        return [BatchRecord.from_model(b) for b in self._session.scalars(stmt)]

    def _require(self, model: type, row_id: int) -> Any:
        row = self._session.get(model, row_id)
        if row is None:
            raise KeyError(f"{model.__tablename__} row {row_id} does not exist")
        return row

    def set_batch_used(self, batch_id: int, used_qty: Decimal) -> BatchRecord:
        batch = self._require(MaterialBatch, batch_id)
        batch.used_qty = used_qty
        self._session.flush()
        return BatchRecord.from_model(batch)

    def set_batch_quantity(self, batch_id: int, quantity: Decimal) -> BatchRecord:
        batch = self._require(MaterialBatch, batch_id)
        batch.quantity = quantity
        self._session.flush()
        return BatchRecord.from_model(batch)

    # =========================================================================
    # Production lots
    # =========================================================================

    def add_lot(
        self,
        *,
        lot_number: str,
        process_code: str,
        product_id: int | None,
        planned_qty: Decimal,
        started_at: datetime,
        parent_lot_id: int | None = None,
        line_code: str | None = None,
    ) -> ProductionLotRecord:
        lot = ProductionLot(
            lot_number=lot_number,
            process_code=process_code,
            product_id=product_id,
            planned_qty=planned_qty,
            completed_qty=Decimal("0"),
            defect_qty=Decimal("0"),
            status="IN_PROGRESS",
            parent_lot_id=parent_lot_id,
            line_code=line_code,
            started_at=started_at,
        )
        self._session.add(lot)
        self._session.flush()
        return ProductionLotRecord.from_model(lot)

    def get_lot(self, lot_id: int) -> ProductionLotRecord | None:
        lot = self._session.get(ProductionLot, lot_id)
        return ProductionLotRecord.from_model(lot) if lot else None

    def find_lot_by_number(self, lot_number: str) -> ProductionLotRecord | None:
        lot = self._session.execute(
            select(ProductionLot).where(ProductionLot.lot_number == lot_number)
        ).scalar_one_or_none()
        return ProductionLotRecord.from_model(lot) if lot else None

    def child_lots(self, parent_lot_id: int) -> list[ProductionLotRecord]:
        rows = self._session.scalars(
            select(ProductionLot)
            .where(ProductionLot.parent_lot_id == parent_lot_id)
            .order_by(ProductionLot.id)
        )
        return [ProductionLotRecord.from_model(lot) for lot in rows]

    def update_lot(self, lot_id: int, **changes: Any) -> ProductionLotRecord:
        check_lot_changes(changes)
        lot = self._require(ProductionLot, lot_id)
        for key, val in changes.items():
            setattr(lot, key, LotStatus(val).value if key == "status" else val)
        self._session.flush()
        return ProductionLotRecord.from_model(lot)

    # =========================================================================
    # Consumption links
    # =========================================================================

    def add_link(
        self,
        *,
        production_lot_id: int,
        material_id: int,
        batch_id: int,
        material_lot_no: str,
        quantity: Decimal,
        created_at: datetime | None = None,
    ) -> LinkRecord:
        link = LotMaterialLink(
            production_lot_id=production_lot_id,
            material_id=material_id,
            batch_id=batch_id,
            material_lot_no=material_lot_no,
            quantity=quantity,
        )
        if created_at is not None:
            link.created_at = created_at
        self._session.add(link)
        self._session.flush()
        return LinkRecord.from_model(link)

    def links_for_lot(self, production_lot_id: int) -> list[LinkRecord]:
        rows = self._session.scalars(
            select(LotMaterialLink)
            .where(LotMaterialLink.production_lot_id == production_lot_id)
            .order_by(LotMaterialLink.id)
        )
        return [LinkRecord.from_model(link) for link in rows]

    def links_for_label(self, material_lot_no: str) -> list[LinkRecord]:
        rows = self._session.scalars(
            select(LotMaterialLink)
            .where(LotMaterialLink.material_lot_no == material_lot_no)
            .order_by(LotMaterialLink.id)
        )
        return [LinkRecord.from_model(link) for link in rows]

    def delete_link(self, link_id: int) -> None:
        link = self._require(LotMaterialLink, link_id)
        self._session.delete(link)
        self._session.flush()

    # =========================================================================
    # Counters
    # =========================================================================

    def next_sequence(self, prefix: str, date_key: str) -> int:
        return self._sequences.next_value(prefix, date_key)
