"""Tests for ProductionService (mes_services.production_service)."""

from datetime import timedelta
from decimal import Decimal

import pytest

from mes_config.schema import EngineSettings
from mes_kernel.domain.dtos import MaterialHint
from mes_kernel.domain.records import LotStatus
from mes_kernel.exceptions import (
    DeductionFailedError,
    LotStatusError,
    ProductionLotNotFoundError,
    ProductNotFoundError,
    SequenceExhaustedError,
)
from mes_services.production_service import ProductionService


@pytest.fixture
def production(store, clock, settings):
    return ProductionService(store, clock, settings)


@pytest.fixture
def product(make_product, make_material, add_bom_line, make_batch):
    """Product needing 2 STL per unit in CA; 50 STL on hand."""
    prd = make_product("PRT")
    steel = make_material("STL")
    add_bom_line(prd, steel, "2", process_code="CA")
    batch = make_batch(steel, "50", lot_number="S-1")
    return prd, batch


class TestLotNumbering:

    def test_sequential_per_process_and_day(self, production, product):
        prd, _ = product
        first = production.start_production("ca", prd.id, Decimal("10"))
        second = production.start_production("CA", prd.id, Decimal("10"))
        other = production.start_production("AS", prd.id, Decimal("10"))

        assert first.lot_number == "CA-250314-0001"
        assert second.lot_number == "CA-250314-0002"
        assert other.lot_number == "AS-250314-0001"
        assert first.process_code == "CA"
        assert first.status == LotStatus.IN_PROGRESS

    def test_new_day_restarts(self, production, clock, product):
        prd, _ = product
        production.start_production("CA", prd.id, Decimal("1"))
        clock.set_time(clock.now() + timedelta(days=1))
        assert production.start_production("CA", prd.id, Decimal("1")).lot_number == "CA-250315-0001"

    def test_exhausted(self, store, clock, product):
        prd, _ = product
        service = ProductionService(store, clock, EngineSettings(max_sequence=2))
        service.start_production("CA", prd.id, Decimal("1"))
        service.start_production("CA", prd.id, Decimal("1"))
        with pytest.raises(SequenceExhaustedError):
            service.start_production("CA", prd.id, Decimal("1"))


class TestStartProduction:

    def test_unknown_product(self, production):
        with pytest.raises(ProductNotFoundError):
            production.start_production("CA", 999, Decimal("1"))

    def test_unknown_parent(self, production, product):
        prd, _ = product
        with pytest.raises(ProductionLotNotFoundError):
            production.start_production("CA", prd.id, Decimal("1"), parent_lot_id=999)

    def test_parent_link(self, production, product):
        prd, _ = product
        parent = production.start_production("CA", prd.id, Decimal("1"))
        child = production.start_production("AS", None, Decimal("1"), parent_lot_id=parent.id)
        assert child.parent_lot_id == parent.id


class TestCompleteProduction:

    def test_deducts_and_completes(self, production, store, product):
        prd, batch = product
        lot = production.start_production("CA", prd.id, Decimal("10"))

        result = production.complete_production(lot.id, Decimal("10"), Decimal("1"))

        assert result.lot.status == LotStatus.COMPLETED
        assert result.lot.completed_qty == Decimal("10")
        assert result.lot.defect_qty == Decimal("1")
        assert result.lot.completed_at is not None
        assert result.deduction.total_deducted == Decimal("20")
        assert store.get_batch(batch.id).available == Decimal("30")
        assert [l.quantity for l in store.links_for_lot(lot.id)] == [Decimal("20")]

    def test_complete_twice_rejected(self, production, product):
        prd, _ = product
        lot = production.start_production("CA", prd.id, Decimal("1"))
        production.complete_production(lot.id, Decimal("1"))
        with pytest.raises(LotStatusError):
            production.complete_production(lot.id, Decimal("1"))

    def test_failed_deduction_leaves_lot_open(self, production, store, product):
        prd, batch = product
        lot = production.start_production("CA", prd.id, Decimal("40"))

        with pytest.raises(DeductionFailedError) as exc_info:
            production.complete_production(lot.id, Decimal("40"), allow_negative=False)

        assert exc_info.value.errors
        assert store.get_lot(lot.id).status == LotStatus.IN_PROGRESS
        assert store.get_batch(batch.id).available == Decimal("50")
        assert store.links_for_lot(lot.id) == []

    def test_mistyped_scan_still_deducts(self, production, store, product):
        prd, batch = product
        lot = production.start_production("CA", prd.id, Decimal("10"))

        result = production.complete_production(
            lot.id,
            Decimal("10"),
            hints=[MaterialHint(batch.material_id, "TYPO-LABEL")],
        )

        assert result.lot.status == LotStatus.COMPLETED
        assert result.deduction.total_deducted == Decimal("20")
        assert store.get_batch(batch.id).available == Decimal("30")
        assert [l.batch_id for l in store.links_for_lot(lot.id)] == [batch.id]

    def test_lot_without_product(self, production):
        lot = production.start_production("PK", None, Decimal("1"))
        result = production.complete_production(lot.id, Decimal("1"))
        assert result.deduction is None
        assert result.lot.status == LotStatus.COMPLETED

    def test_unknown_lot(self, production):
        with pytest.raises(ProductionLotNotFoundError):
            production.complete_production(999, Decimal("1"))


class TestCancelProduction:

    def test_cancel_completed_restores_stock(self, production, store, product):
        prd, batch = product
        lot = production.start_production("CA", prd.id, Decimal("40"))
        production.complete_production(lot.id, Decimal("40"), allow_negative=True)
        assert store.get_batch(batch.id).available == Decimal("-30")

        result = production.cancel_production(lot.id)

        assert result.lot.status == LotStatus.CANCELLED
        assert result.rollback.restored_count == 1
        assert store.get_batch(batch.id).available == Decimal("50")

    def test_cancel_in_progress(self, production, product):
        prd, _ = product
        lot = production.start_production("CA", prd.id, Decimal("1"))
        result = production.cancel_production(lot.id)
        assert result.rollback.restored_count == 0
        assert result.lot.status == LotStatus.CANCELLED

    def test_cancel_twice_rejected(self, production, product):
        prd, _ = product
        lot = production.start_production("CA", prd.id, Decimal("1"))
        production.cancel_production(lot.id)
        with pytest.raises(LotStatusError):
            production.cancel_production(lot.id)
