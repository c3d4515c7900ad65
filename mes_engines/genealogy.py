"""
Lot genealogy -- trace tree value objects and pure tree utilities.

Responsibility:
    Node and result types produced by
    ``mes_services.genealogy_service.GenealogyTracer``, plus pure helpers
    that count, flatten and summarize a trace tree.

Architecture position:
    Engines -- pure functional core, zero I/O.

Invariants enforced:
    - Tree utilities walk with an explicit stack, so a deep (depth-bounded)
      tree never hits the interpreter recursion limit.
    - NOT_FOUND production roots are excluded from summaries.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class NodeType(str, Enum):
    PRODUCTION_LOT = "PRODUCTION_LOT"
    MATERIAL_LOT = "MATERIAL_LOT"


class TraceDirection(str, Enum):
    FORWARD = "FORWARD"
    BACKWARD = "BACKWARD"
    BOTH = "BOTH"


class NodeStatus:
    """Statuses a node can carry besides a production lot's own status."""

    NOT_FOUND = "NOT_FOUND"
    TRACED = "TRACED"
    USED = "USED"


# Process code placeholders for nodes that are not production lots
MATERIAL_PROCESS = "MATERIAL"
UNKNOWN_PROCESS = "UNKNOWN"


@dataclass(slots=True)
class TraceNode:
    """
    One node of a trace tree.

    Children are appended while the tracer expands its worklist; the tree
    is not modified after the trace result is returned.
    """

    node_id: int | None
    lot_number: str
    process_code: str
    node_type: NodeType
    quantity: Decimal
    status: str
    depth: int
    date: datetime | None = None
    product_code: str | None = None
    product_name: str | None = None
    material_code: str | None = None
    material_name: str | None = None
    children: list[TraceNode] = field(default_factory=list)

    def walk(self) -> Iterator[TraceNode]:
        """Pre-order traversal of this node and its descendants."""
        stack: list[TraceNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


@dataclass(frozen=True, slots=True)
class TraceResult:
    root: TraceNode
    total_nodes: int
    max_depth: int
    direction: TraceDirection
    traced_at: datetime

    @classmethod
    def create(
        cls,
        root: TraceNode,
        direction: TraceDirection,
        traced_at: datetime,
    ) -> TraceResult:
        total = 0
        deepest = 0
        for node in root.walk():
            total += 1
            deepest = max(deepest, node.depth)
        return cls(
            root=root,
            total_nodes=total,
            max_depth=deepest,
            direction=direction,
            traced_at=traced_at,
        )


@dataclass(frozen=True, slots=True)
class BidirectionalTrace:
    """Forward and backward traces of the same identifier, built independently."""

    forward: TraceResult
    backward: TraceResult


# =============================================================================
# Flatten / summarize
# =============================================================================


@dataclass(frozen=True, slots=True)
class FlatTraceNode:
    """A trace node without its children, with the parent's lot number."""

    lot_number: str
    process_code: str
    node_type: NodeType
    quantity: Decimal
    status: str
    depth: int
    parent_lot_number: str | None = None
    product_code: str | None = None
    material_code: str | None = None


def flatten_trace(result: TraceResult) -> list[FlatTraceNode]:
    """Pre-order list of every node in the tree."""
    flat: list[FlatTraceNode] = []
    stack: list[tuple[TraceNode, str | None]] = [(result.root, None)]
    while stack:
        node, parent_lot = stack.pop()
        flat.append(
            FlatTraceNode(
                lot_number=node.lot_number,
                process_code=node.process_code,
                node_type=node.node_type,
                quantity=node.quantity,
                status=node.status,
                depth=node.depth,
                parent_lot_number=parent_lot,
                product_code=node.product_code,
                material_code=node.material_code,
            )
        )
        stack.extend((child, node.lot_number) for child in reversed(node.children))
    return flat


@dataclass(frozen=True, slots=True)
class LotSummaryEntry:
    lot_number: str
    code: str
    quantity: Decimal
    process_code: str | None = None
    name: str | None = None


@dataclass(frozen=True, slots=True)
class TraceSummary:
    lot_number: str
    direction: TraceDirection
    production_lots: tuple[LotSummaryEntry, ...]
    material_lots: tuple[LotSummaryEntry, ...]

    @property
    def total_production_lots(self) -> int:
        return len(self.production_lots)

    @property
    def total_material_lots(self) -> int:
        return len(self.material_lots)


def summarize_trace(result: TraceResult) -> TraceSummary:
    """Production and material lots appearing in the tree, in pre-order."""
    production: list[LotSummaryEntry] = []
    material: list[LotSummaryEntry] = []
    for node in result.root.walk():
        if node.node_type == NodeType.PRODUCTION_LOT:
            if node.status == NodeStatus.NOT_FOUND:
                continue
            production.append(
                LotSummaryEntry(
                    lot_number=node.lot_number,
                    code=node.product_code or "",
                    quantity=node.quantity,
                    process_code=node.process_code,
                    name=node.product_name,
                )
            )
        else:
            material.append(
                LotSummaryEntry(
                    lot_number=node.lot_number,
                    code=node.material_code or "",
                    quantity=node.quantity,
                    name=node.material_name,
                )
            )
    return TraceSummary(
        lot_number=result.root.lot_number,
        direction=result.direction,
        production_lots=tuple(production),
        material_lots=tuple(material),
    )
