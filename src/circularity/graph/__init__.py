"""
Deal graph module.

Derives a directed multigraph of companies from deal records.

Tech Stack:
- Input validation: pydantic records from the data layer
- Processing: plain Python aggregation, NetworkX projection for graph tooling
"""

from circularity.graph.models import (
    BuildIssue,
    Edge,
    FlowBreakdown,
    Node,
    SuperEdge,
)
from circularity.graph.builder import (
    MULTIPLE_AMOUNTS_TEXT,
    DealGraph,
    DirectionResult,
    GraphBuilder,
    UnknownCompanyError,
    aggregate_amount_text,
    build_graph,
    bundle_edges,
    infer_direction,
)

__all__ = [
    # Records
    "BuildIssue",
    "Edge",
    "FlowBreakdown",
    "Node",
    "SuperEdge",
    # Builder
    "MULTIPLE_AMOUNTS_TEXT",
    "DealGraph",
    "DirectionResult",
    "GraphBuilder",
    "UnknownCompanyError",
    "aggregate_amount_text",
    "build_graph",
    "bundle_edges",
    "infer_direction",
]
