"""
Tests for StockLedger (mes_services.stock_ledger).

Every test runs against both the in-memory and the SQLAlchemy store.
"""

from decimal import Decimal

import pytest

from mes_kernel.domain.dtos import ReceiptRequest
from mes_kernel.exceptions import (
    BatchNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    MaterialNotFoundError,
)
from mes_services.stock_ledger import StockLedger


@pytest.fixture
def ledger(store, clock):
    return StockLedger(store, clock)


class TestReceiveStock:

    def test_creates_batch(self, ledger, make_material):
        steel = make_material("STL")
        batch = ledger.receive_stock(steel.id, "R-001", Decimal("50"), location="A1")

        assert batch.lot_number == "R-001"
        assert batch.quantity == Decimal("50")
        assert batch.used_qty == Decimal("0")
        assert batch.available == Decimal("50")
        assert batch.location == "A1"

    def test_rejects_non_positive_quantity(self, ledger, make_material):
        steel = make_material()
        with pytest.raises(InvalidQuantityError):
            ledger.receive_stock(steel.id, "R-001", Decimal("0"))

    def test_unknown_material(self, ledger):
        with pytest.raises(MaterialNotFoundError):
            ledger.receive_stock(999, "R-001", Decimal("5"))

    def test_logs_receipt(self, ledger, make_material, captured_logs):
        steel = make_material("STL")
        ledger.receive_stock(steel.id, "R-001", Decimal("5"))
        record = [r for r in captured_logs() if r["message"] == "stock_received"][-1]
        assert record["material_code"] == "STL"
        assert record["quantity"] == "5"


class TestReceiveStockBatch:

    def test_failures_do_not_block_others(self, ledger, make_material):
        steel = make_material()
        result = ledger.receive_stock_batch([
            ReceiptRequest(material_id=steel.id, lot_number="R-1", quantity=Decimal("5")),
            ReceiptRequest(material_id=999, lot_number="R-2", quantity=Decimal("5")),
            ReceiptRequest(material_id=steel.id, lot_number="R-3", quantity=Decimal("-1")),
            ReceiptRequest(material_id=steel.id, lot_number="R-4", quantity=Decimal("7")),
        ])

        assert result.success_count == 2
        assert result.failure_count == 2
        assert [f.lot_number for f in result.failures] == ["R-2", "R-3"]
        assert ledger.available_qty(steel.id) == Decimal("12")


class TestConsumeStock:

    def test_consumes_named_batch(self, ledger, make_material, make_batch):
        steel = make_material()
        make_batch(steel, "50", lot_number="R-1")
        batch = ledger.consume_stock(steel.id, "R-1", Decimal("20"))
        assert batch.used_qty == Decimal("20")
        assert batch.available == Decimal("30")

    def test_insufficient_stock(self, ledger, make_material, make_batch):
        steel = make_material()
        make_batch(steel, "10", lot_number="R-1")
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.consume_stock(steel.id, "R-1", Decimal("11"))
        assert exc_info.value.available_qty == Decimal("10")
        assert ledger.available_qty(steel.id) == Decimal("10")

    def test_unknown_label(self, ledger, make_material):
        steel = make_material()
        with pytest.raises(BatchNotFoundError):
            ledger.consume_stock(steel.id, "NOPE", Decimal("1"))

    def test_records_link_for_lot(self, ledger, store, make_material, make_batch, make_lot):
        steel = make_material()
        make_batch(steel, "50", lot_number="R-1")
        lot = make_lot()
        ledger.consume_stock(steel.id, "R-1", Decimal("5"), production_lot_id=lot.id)

        links = store.links_for_lot(lot.id)
        assert [(l.material_lot_no, l.quantity) for l in links] == [("R-1", Decimal("5"))]


class TestAdjustAndQuery:

    def test_adjust_quantity(self, ledger, make_material, make_batch):
        steel = make_material()
        batch = make_batch(steel, "50")
        adjusted = ledger.adjust_stock(batch.id, Decimal("45"))
        assert adjusted.quantity == Decimal("45")

    def test_adjust_unknown_batch(self, ledger):
        with pytest.raises(BatchNotFoundError):
            ledger.adjust_stock(999, Decimal("1"))

    def test_available_batches_excludes_empty(self, ledger, make_material, make_batch):
        steel = make_material()
        first = make_batch(steel, "10")
        second = make_batch(steel, "10")
        ledger.consume_stock(steel.id, first.lot_number, Decimal("10"))
        assert [b.id for b in ledger.available_batches(steel.id)] == [second.id]

    def test_batches_in_receipt_order(self, ledger, make_material, make_batch):
        steel = make_material()
        ids = [make_batch(steel, "1").id for _ in range(3)]
        assert [b.id for b in ledger.batches_for_material(steel.id)] == ids

    def test_locations(self, ledger, make_material, make_batch):
        steel = make_material()
        make_batch(steel, "1", location="B2")
        make_batch(steel, "1", location="A1")
        make_batch(steel, "1")
        assert ledger.locations() == ["A1", "B2"]
        assert len(ledger.batches_at("A1")) == 1
