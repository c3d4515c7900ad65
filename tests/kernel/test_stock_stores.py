"""
Contract tests for the StockStore adapters (mes_kernel.storage).

Both adapters must order, scope and undo writes identically.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from mes_kernel.domain.records import BomItemType, LotStatus
from mes_kernel.storage import InMemoryStockStore, StockStore

T0 = datetime(2025, 3, 14, 8, 0, tzinfo=timezone.utc)


class TestProtocol:

    def test_adapters_satisfy_protocol(self, store):
        assert isinstance(store, StockStore)


class TestUnitOfWork:

    def test_exception_undoes_writes(self, store, make_material, make_batch):
        steel = make_material()
        batch = make_batch(steel, "10")

        with pytest.raises(RuntimeError):
            with store.unit_of_work():
                store.set_batch_used(batch.id, Decimal("4"))
                raise RuntimeError("abort")

        assert store.get_batch(batch.id).used_qty == Decimal("0")

    def test_nested_failure_keeps_outer_writes(self, store, make_material, make_batch):
        steel = make_material()
        first = make_batch(steel, "10")
        second = make_batch(steel, "10")

        with store.unit_of_work():
            store.set_batch_used(first.id, Decimal("1"))
            with pytest.raises(RuntimeError):
                with store.unit_of_work():
                    store.set_batch_used(second.id, Decimal("2"))
                    raise RuntimeError("inner")

        assert store.get_batch(first.id).used_qty == Decimal("1")
        assert store.get_batch(second.id).used_qty == Decimal("0")


class TestBatches:

    def test_receipt_order_with_id_tiebreak(self, store, make_material, make_batch):
        steel = make_material()
        late = make_batch(steel, "1", received_at=T0 + timedelta(hours=2))
        tie_a = make_batch(steel, "1", received_at=T0)
        tie_b = make_batch(steel, "1", received_at=T0)

        assert [b.id for b in store.batches_for_material(steel.id)] == [tie_a.id, tie_b.id, late.id]

    def test_find_batch_scoped_to_material(self, store, make_material, make_batch):
        steel = make_material()
        bolt = make_material()
        make_batch(steel, "1", lot_number="SHARED")
        bolt_batch = make_batch(bolt, "2", lot_number="SHARED")

        assert store.find_batch(bolt.id, "SHARED").id == bolt_batch.id
        assert len(store.batches_by_label("SHARED")) == 2
        assert store.find_batch(bolt.id, "OTHER") is None

    def test_quantities_read_back_without_column_scale(self, store, make_material, make_batch):
        steel = make_material()
        batch = make_batch(steel, "5")
        store.set_batch_used(batch.id, Decimal("2.5"))

        fetched = store.get_batch(batch.id)

        assert str(fetched.quantity) == "5"
        assert str(fetched.used_qty) == "2.5"
        assert str(fetched.available) == "2.5"

    def test_set_used_on_missing_batch(self, store):
        with pytest.raises(KeyError):
            store.set_batch_used(999, Decimal("1"))


class TestBomLines:

    def test_process_code_normalized(self, store, make_product, make_material):
        product = make_product()
        steel = make_material()
        store.add_bom_line(
            product_id=product.id,
            material_id=steel.id,
            quantity_per_unit=Decimal("2"),
            process_code="ca",
        )
        store.add_bom_line(
            product_id=product.id,
            material_id=steel.id,
            quantity_per_unit=Decimal("3"),
        )

        assert [l.quantity_per_unit for l in store.bom_lines(product.id, "CA")] == [Decimal("2")]
        assert len(store.bom_lines(product.id)) == 2
        assert store.bom_lines(product.id)[0].item_type == BomItemType.MATERIAL


class TestLots:

    def test_update_mutable_fields(self, store, make_lot):
        lot = make_lot()
        updated = store.update_lot(lot.id, status=LotStatus.COMPLETED, completed_qty=Decimal("3"))
        assert updated.status == LotStatus.COMPLETED
        assert updated.completed_qty == Decimal("3")

    def test_immutable_field_rejected(self, store, make_lot):
        lot = make_lot()
        with pytest.raises(ValueError):
            store.update_lot(lot.id, lot_number="OTHER")

    def test_child_lots(self, store, make_lot):
        parent = make_lot()
        child = make_lot(parent=parent)
        assert [l.id for l in store.child_lots(parent.id)] == [child.id]


class TestLinks:

    def test_creation_order_and_delete(self, store, make_material, make_batch, make_lot):
        steel = make_material()
        batch = make_batch(steel, "10", lot_number="S-1")
        lot = make_lot()
        first = store.add_link(
            production_lot_id=lot.id, material_id=steel.id, batch_id=batch.id,
            material_lot_no="S-1", quantity=Decimal("1"),
        )
        second = store.add_link(
            production_lot_id=lot.id, material_id=steel.id, batch_id=batch.id,
            material_lot_no="S-1", quantity=Decimal("2"),
        )

        assert [l.id for l in store.links_for_lot(lot.id)] == [first.id, second.id]
        store.delete_link(first.id)
        assert [l.id for l in store.links_for_label("S-1")] == [second.id]


class TestSequences:

    def test_independent_keys(self, store):
        assert store.next_sequence("CA", "250314") == 1
        assert store.next_sequence("CA", "250314") == 2
        assert store.next_sequence("CA", "250315") == 1
        assert store.next_sequence("AS", "250314") == 1

    def test_sequence_undone_with_unit_of_work(self, store):
        store.next_sequence("CA", "250314")
        with pytest.raises(RuntimeError):
            with store.unit_of_work():
                store.next_sequence("CA", "250314")
                raise RuntimeError("abort")
        assert store.next_sequence("CA", "250314") == 2


class TestMemoryOnly:

    def test_duplicate_material_code(self):
        store = InMemoryStockStore()
        store.add_material(code="STL", name="Steel")
        with pytest.raises(ValueError):
            store.add_material(code="STL", name="Again")
