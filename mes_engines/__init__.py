"""
Pure calculation engines for the factory execution tracker.

- fifo: oldest-first draw planning with the allow-negative overflow rule
- bom: BOM scaling and requirement merging
- genealogy: trace tree types, flattening and summaries
"""

from mes_engines.bom import merge_requirements, scale_requirements
from mes_engines.fifo import FifoAllocation, plan_fifo_draws, receipt_order
from mes_engines.genealogy import (
    BidirectionalTrace,
    NodeType,
    TraceDirection,
    TraceNode,
    TraceResult,
    flatten_trace,
    summarize_trace,
)

__all__ = [
    "BidirectionalTrace",
    "FifoAllocation",
    "NodeType",
    "TraceDirection",
    "TraceNode",
    "TraceResult",
    "flatten_trace",
    "merge_requirements",
    "plan_fifo_draws",
    "receipt_order",
    "scale_requirements",
    "summarize_trace",
]
