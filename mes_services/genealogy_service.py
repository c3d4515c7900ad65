"""
mes_services.genealogy_service -- Depth-bounded lot genealogy over consumption links.

Responsibility:
    Reconstruct, on demand, where a material batch went (forward) and what
    went into a production lot (backward).  Trees are built from
    consumption links and production-lot parent pointers.

Architecture position:
    Services -- read-only over the StockStore.  Node and result types and
    the summary/flatten helpers live in ``mes_engines.genealogy``.

Invariants enforced:
    - Traversal uses an explicit worklist with a per-item depth counter.
      No node is placed deeper than ``max_depth``, so cyclic or malformed
      parent pointers cannot make a trace run away.
    - Forward: the batch-label root is depth 0, lots that consumed it are
      depth 1, their child lots depth 2, and so on.
    - Backward: the lot root is depth 0; the materials and parent of the
      lot at level d sit at depth d (d starting at 1).

Failure modes:
    - ValueError on a negative max_depth.
    - Unknown identifiers are not errors: they yield a single NOT_FOUND root.
"""

from __future__ import annotations

from collections import deque

from mes_config import get_active_config
from mes_config.schema import EngineSettings
from mes_engines.genealogy import (
    MATERIAL_PROCESS,
    UNKNOWN_PROCESS,
    BidirectionalTrace,
    NodeStatus,
    NodeType,
    TraceDirection,
    TraceNode,
    TraceResult,
)
from mes_kernel.domain.clock import Clock, SystemClock
from mes_kernel.domain.dtos import ZERO
from mes_kernel.domain.records import LinkRecord, MaterialRecord, ProductionLotRecord
from mes_kernel.logging_config import get_logger
from mes_kernel.storage.port import StockStore

logger = get_logger("services.genealogy")


class GenealogyTracer:
    """Builds forward, backward and bidirectional trace trees."""

    def __init__(
        self,
        store: StockStore,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._settings = settings or get_active_config()

    def _depth_limit(self, max_depth: int | None) -> int:
        limit = self._settings.max_trace_depth if max_depth is None else max_depth
        if limit < 0:
            raise ValueError(f"max_depth must be >= 0, got {limit}")
        return limit

    # =========================================================================
    # Node builders
    # =========================================================================

    def _lot_node(self, lot: ProductionLotRecord, depth: int) -> TraceNode:
        product = self._store.get_product(lot.product_id) if lot.product_id else None
        return TraceNode(
            node_id=lot.id,
            lot_number=lot.lot_number,
            process_code=lot.process_code,
            node_type=NodeType.PRODUCTION_LOT,
            quantity=lot.completed_qty,
            status=lot.status.value,
            depth=depth,
            date=lot.started_at,
            product_code=product.code if product else None,
            product_name=product.name if product else None,
        )

    def _link_node(self, link: LinkRecord, depth: int) -> TraceNode:
        material = self._store.get_material(link.material_id)
        return TraceNode(
            node_id=link.batch_id,
            lot_number=link.material_lot_no,
            process_code=MATERIAL_PROCESS,
            node_type=NodeType.MATERIAL_LOT,
            quantity=link.quantity,
            status=NodeStatus.USED,
            depth=depth,
            date=link.created_at,
            material_code=material.code if material else None,
            material_name=material.name if material else None,
        )

    def _material_for_label(self, lot_number: str) -> MaterialRecord | None:
        material = self._store.find_material_by_code(lot_number)
        if material is not None:
            return material
        batches = self._store.batches_by_label(lot_number)
        return self._store.get_material(batches[0].material_id) if batches else None

    # =========================================================================
    # Traces
    # =========================================================================

    def trace_forward(self, lot_number: str, max_depth: int | None = None) -> TraceResult:
        """
        Where did batch ``lot_number`` go?

        Root is a MATERIAL_LOT node whose quantity is the total consumed
        from the label; each distinct consuming lot is a child at depth 1,
        expanded through child lots while depth < max_depth.
        """
        limit = self._depth_limit(max_depth)
        links = self._store.links_for_label(lot_number)

        if not links:
            material = self._material_for_label(lot_number)
            root = TraceNode(
                node_id=None,
                lot_number=lot_number,
                process_code=MATERIAL_PROCESS,
                node_type=NodeType.MATERIAL_LOT,
                quantity=ZERO,
                status=NodeStatus.NOT_FOUND,
                depth=0,
                material_code=material.code if material else None,
                material_name=material.name if material else None,
            )
            return self._finish(root, TraceDirection.FORWARD, lot_number)

        material = self._store.get_material(links[0].material_id)
        batch = self._store.get_batch(links[0].batch_id)
        root = TraceNode(
            node_id=links[0].batch_id,
            lot_number=lot_number,
            process_code=MATERIAL_PROCESS,
            node_type=NodeType.MATERIAL_LOT,
            quantity=sum((link.quantity for link in links), ZERO),
            status=NodeStatus.TRACED,
            depth=0,
            date=batch.received_at if batch else None,
            material_code=material.code if material else None,
            material_name=material.name if material else None,
        )

        worklist: deque[tuple[TraceNode, ProductionLotRecord, int]] = deque()
        if limit >= 1:
            seen: set[int] = set()
            for link in links:
                if link.production_lot_id in seen:
                    continue
                seen.add(link.production_lot_id)
                lot = self._store.get_lot(link.production_lot_id)
                if lot is not None:
                    worklist.append((root, lot, 1))

        while worklist:
            parent, lot, depth = worklist.popleft()
            node = self._lot_node(lot, depth)
            parent.children.append(node)
            if depth < limit:
                for child in self._store.child_lots(lot.id):
                    worklist.append((node, child, depth + 1))

        return self._finish(root, TraceDirection.FORWARD, lot_number)

    def trace_backward(self, lot_number: str, max_depth: int | None = None) -> TraceResult:
        """
        What went into production lot ``lot_number``?

        Walks the parent chain: at each level the lot's consumed batches
        and its parent lot are attached, then the walk continues from the
        parent one level deeper.
        """
        limit = self._depth_limit(max_depth)
        lot = self._store.find_lot_by_number(lot_number)

        if lot is None:
            root = TraceNode(
                node_id=None,
                lot_number=lot_number,
                process_code=UNKNOWN_PROCESS,
                node_type=NodeType.PRODUCTION_LOT,
                quantity=ZERO,
                status=NodeStatus.NOT_FOUND,
                depth=0,
            )
            return self._finish(root, TraceDirection.BACKWARD, lot_number)

        root = self._lot_node(lot, 0)
        worklist: deque[tuple[TraceNode, ProductionLotRecord, int]] = deque([(root, lot, 1)])
        while worklist:
            node, current, depth = worklist.popleft()
            if depth > limit:
                continue
            for link in self._store.links_for_lot(current.id):
                node.children.append(self._link_node(link, depth))
            if current.parent_lot_id is None:
                continue
            parent = self._store.get_lot(current.parent_lot_id)
            if parent is None:
                continue
            parent_node = self._lot_node(parent, depth)
            node.children.append(parent_node)
            worklist.append((parent_node, parent, depth + 1))

        return self._finish(root, TraceDirection.BACKWARD, lot_number)

    def trace_both(self, identifier: str, max_depth: int | None = None) -> BidirectionalTrace:
        """Forward trace of ``identifier`` as a batch label, backward as a lot number."""
        return BidirectionalTrace(
            forward=self.trace_forward(identifier, max_depth),
            backward=self.trace_backward(identifier, max_depth),
        )

    def _finish(
        self,
        root: TraceNode,
        direction: TraceDirection,
        identifier: str,
    ) -> TraceResult:
        result = TraceResult.create(root, direction, self._clock.now())
        logger.info(
            "genealogy_traced",
            extra={
                "identifier": identifier,
                "direction": direction.value,
                "total_nodes": result.total_nodes,
                "max_depth": result.max_depth,
                "found": root.status != NodeStatus.NOT_FOUND,
            },
        )
        return result

    # =========================================================================
    # Single-hop lookups
    # =========================================================================

    def find_products_by_material(self, lot_number: str) -> list[ProductionLotRecord]:
        """Production lots that consumed the batch label, in link order."""
        lots: list[ProductionLotRecord] = []
        seen: set[int] = set()
        for link in self._store.links_for_label(lot_number):
            if link.production_lot_id in seen:
                continue
            seen.add(link.production_lot_id)
            lot = self._store.get_lot(link.production_lot_id)
            if lot is not None:
                lots.append(lot)
        return lots

    def find_materials_by_lot(self, lot_number: str) -> list[LinkRecord]:
        """Consumption links of a production lot; empty for an unknown lot."""
        lot = self._store.find_lot_by_number(lot_number)
        if lot is None:
            return []
        return self._store.links_for_lot(lot.id)
