"""
Tests for GenealogyTracer (mes_services.genealogy_service).

Covers:
- Forward trace from a batch label through consuming lots and their child lots
- Backward trace from a lot through its consumed batches and parent chain
- Round trip: a batch consumed by a lot appears in that lot's backward trace
- Depth bounds on cyclic parent pointers
- NOT_FOUND roots for unknown identifiers
"""

from decimal import Decimal

import pytest

from mes_engines.genealogy import (
    NodeStatus,
    NodeType,
    TraceDirection,
    flatten_trace,
    summarize_trace,
)
from mes_services.genealogy_service import GenealogyTracer
from mes_services.stock_ledger import StockLedger


@pytest.fixture
def tracer(store, clock, settings):
    return GenealogyTracer(store, clock, settings)


@pytest.fixture
def chain(store, clock, make_product, make_material, make_batch, make_lot):
    """S-1 feeds L1 (CA); L2 (AS) continues L1; L2 also consumes B-1."""
    ledger = StockLedger(store, clock)
    steel = make_material("STL", "Steel")
    bolt = make_material("BLT", "Bolt")
    make_batch(steel, "100", lot_number="S-1")
    make_batch(bolt, "100", lot_number="B-1")
    part = make_product("PRT", "Part")
    assembly = make_product("ASM", "Assembly")
    l1 = make_lot(part, "CA", lot_number="CA-250314-0001")
    l2 = make_lot(assembly, "AS", parent=l1, lot_number="AS-250314-0001")
    ledger.consume_stock(steel.id, "S-1", Decimal("20"), production_lot_id=l1.id)
    ledger.consume_stock(steel.id, "S-1", Decimal("5"), production_lot_id=l1.id)
    ledger.consume_stock(bolt.id, "B-1", Decimal("4"), production_lot_id=l2.id)
    return l1, l2


class TestForwardTrace:

    def test_batch_to_lots(self, tracer, chain):
        l1, l2 = chain
        result = tracer.trace_forward("S-1")

        root = result.root
        assert result.direction == TraceDirection.FORWARD
        assert root.node_type == NodeType.MATERIAL_LOT
        assert root.status == NodeStatus.TRACED
        assert root.quantity == Decimal("25")
        assert root.material_code == "STL"
        assert [c.lot_number for c in root.children] == [l1.lot_number]
        assert root.children[0].depth == 1
        assert root.children[0].product_code == "PRT"
        assert [c.lot_number for c in root.children[0].children] == [l2.lot_number]
        assert result.total_nodes == 3
        assert result.max_depth == 2

    def test_depth_limit(self, tracer, chain):
        result = tracer.trace_forward("S-1", max_depth=1)
        assert result.total_nodes == 2
        assert result.root.children[0].children == []

    def test_depth_zero_is_root_only(self, tracer, chain):
        result = tracer.trace_forward("S-1", max_depth=0)
        assert result.total_nodes == 1
        assert result.max_depth == 0

    def test_unknown_label(self, tracer):
        result = tracer.trace_forward("NOPE")
        assert result.root.status == NodeStatus.NOT_FOUND
        assert result.total_nodes == 1

    def test_received_but_unused_label(self, tracer, make_material, make_batch):
        steel = make_material("STL", "Steel")
        make_batch(steel, "10", lot_number="FRESH")
        result = tracer.trace_forward("FRESH")
        assert result.root.status == NodeStatus.NOT_FOUND
        assert result.root.material_code == "STL"

    def test_negative_depth_rejected(self, tracer):
        with pytest.raises(ValueError):
            tracer.trace_forward("S-1", max_depth=-1)


class TestBackwardTrace:

    def test_lot_to_materials_and_parent(self, tracer, chain):
        l1, l2 = chain
        result = tracer.trace_backward(l2.lot_number)

        root = result.root
        assert root.node_type == NodeType.PRODUCTION_LOT
        assert root.process_code == "AS"
        labels = [(c.lot_number, c.node_type, c.depth) for c in root.children]
        assert labels == [
            ("B-1", NodeType.MATERIAL_LOT, 1),
            (l1.lot_number, NodeType.PRODUCTION_LOT, 1),
        ]
        parent = root.children[1]
        assert [(c.lot_number, c.quantity) for c in parent.children] == [
            ("S-1", Decimal("20")),
            ("S-1", Decimal("5")),
        ]
        assert all(c.status == NodeStatus.USED for c in parent.children)
        assert result.max_depth == 2

    def test_depth_limit(self, tracer, chain):
        _, l2 = chain
        result = tracer.trace_backward(l2.lot_number, max_depth=1)
        assert result.max_depth == 1
        assert result.root.children[1].children == []

    def test_unknown_lot(self, tracer):
        result = tracer.trace_backward("XX-000000-0000")
        assert result.root.status == NodeStatus.NOT_FOUND
        assert result.root.process_code == "UNKNOWN"
        assert result.total_nodes == 1


class TestRoundTrip:

    def test_forward_lot_traces_back_to_batch(self, tracer, chain):
        forward = tracer.trace_forward("S-1")
        lot_number = forward.root.children[0].lot_number

        backward = tracer.trace_backward(lot_number)

        material_labels = {
            n.lot_number for n in backward.root.walk() if n.node_type == NodeType.MATERIAL_LOT
        }
        assert "S-1" in material_labels

    def test_trace_both(self, tracer, chain):
        l1, _ = chain
        both = tracer.trace_both(l1.lot_number)
        assert both.forward.root.status == NodeStatus.NOT_FOUND
        assert both.backward.root.lot_number == l1.lot_number

    def test_summary_and_flatten(self, tracer, chain):
        l1, l2 = chain
        result = tracer.trace_backward(l2.lot_number)

        summary = summarize_trace(result)
        assert [e.lot_number for e in summary.production_lots] == [l2.lot_number, l1.lot_number]
        assert [e.lot_number for e in summary.material_lots] == ["B-1", "S-1", "S-1"]
        assert len(flatten_trace(result)) == result.total_nodes


class TestCycles:

    def test_backward_cycle_bounded(self, tracer, store, make_product, make_lot):
        product = make_product()
        a = make_lot(product)
        b = make_lot(product, parent=a)
        store.update_lot(a.id, parent_lot_id=b.id)

        result = tracer.trace_backward(a.lot_number, max_depth=5)

        assert result.max_depth == 5
        assert result.total_nodes == 6

    def test_forward_cycle_bounded(self, tracer, store, clock, make_product, make_material, make_batch, make_lot):
        steel = make_material()
        make_batch(steel, "10", lot_number="S-9")
        product = make_product()
        a = make_lot(product)
        b = make_lot(product, parent=a)
        store.update_lot(a.id, parent_lot_id=b.id)
        StockLedger(store, clock).consume_stock(steel.id, "S-9", Decimal("1"), production_lot_id=a.id)

        result = tracer.trace_forward("S-9", max_depth=4)

        assert result.max_depth == 4
        assert result.total_nodes == 5


class TestLookups:

    def test_find_products_by_material(self, tracer, chain):
        l1, _ = chain
        assert [lot.id for lot in tracer.find_products_by_material("S-1")] == [l1.id]

    def test_find_materials_by_lot(self, tracer, chain):
        l1, _ = chain
        assert [link.quantity for link in tracer.find_materials_by_lot(l1.lot_number)] == [
            Decimal("20"),
            Decimal("5"),
        ]
        assert tracer.find_materials_by_lot("NOPE") == []

    def test_trace_logged(self, tracer, chain, captured_logs):
        tracer.trace_forward("S-1")
        record = [r for r in captured_logs() if r["message"] == "genealogy_traced"][-1]
        assert record["direction"] == "FORWARD"
        assert record["total_nodes"] == 3
        assert record["found"] is True
