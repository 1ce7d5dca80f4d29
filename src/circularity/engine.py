"""
Circularity engine entry points.

derive_graph() produces the graph response consumed by presentation code:
nodes, edges, bundled super edges, deal lookup, loops, cycles and hub
scores. The null model comparison and sensitivity analysis are expensive
and run only on demand from an existing response.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import numpy as np

from circularity.config import Settings, settings as default_settings
from circularity.graph import (
    BuildIssue,
    DealGraph,
    Edge,
    Node,
    SuperEdge,
    build_graph,
    bundle_edges,
)
from circularity.graph.builder import CompanyScope
from circularity.patterns import (
    Cycle,
    HubScore,
    Loop,
    WeightingScheme,
    compute_hub_scores,
    detect_cycles,
    detect_loops,
)
from circularity.patterns.cycles import MAX_CYCLE_LENGTH
from circularity.schemas import Company, Deal, GraphFilters
from circularity.stats import (
    NullModelComparison,
    SensitivityAnalysis,
    compare_to_null_model,
    run_sensitivity_analysis,
)

logger = logging.getLogger(__name__)


@dataclass
class GraphResponse:
    """Derived graph with its detected circularity structures."""

    nodes: list[Node]
    edges: list[Edge]
    super_edges: list[SuperEdge]
    deals_by_id: dict[str, Deal]
    loops: list[Loop]
    multi_party_cycles: list[Cycle]
    hub_scores: list[HubScore]
    issues: list[BuildIssue] = field(default_factory=list)

    graph: Optional[DealGraph] = field(default=None, repr=False)
    max_cycle_length: int = MAX_CYCLE_LENGTH

    def to_dict(self) -> dict[str, Any]:
        companies = self.graph.companies if self.graph else None
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "super_edges": [s.to_dict() for s in self.super_edges],
            "deals_by_id": {
                deal_id: deal.to_dict(companies) for deal_id, deal in self.deals_by_id.items()
            },
            "loops": [l.to_dict() for l in self.loops],
            "multi_party_cycles": [c.to_dict() for c in self.multi_party_cycles],
            "hub_scores": [h.to_dict() for h in self.hub_scores],
            "issues": [i.to_dict() for i in self.issues],
        }


def derive_graph(
    companies: Iterable[Company],
    deals: Iterable[Deal],
    filters: Optional[GraphFilters] = None,
    company_slugs: CompanyScope = "all",
    settings: Optional[Settings] = None,
) -> GraphResponse:
    """
    Build the deal graph and detect loops, cycles and hubs.

    Args:
        companies: Companies known to the data layer
        deals: Deal records
        filters: Optional deal filters
        company_slugs: "all" or the slugs of the companies in scope
        settings: Engine settings (module settings if None)

    Returns:
        GraphResponse ready for presentation
    """
    settings = settings or default_settings

    graph = build_graph(
        companies,
        deals,
        filters=filters,
        company_slugs=company_slugs,
        partnership_policy=settings.partnership_policy,
    )
    detection_edges = graph.detection_edges

    loops = detect_loops(detection_edges, graph.companies)
    cycles = detect_cycles(detection_edges, graph.companies, settings.max_cycle_length)
    hub_scores = compute_hub_scores(graph.node_companies, loops, cycles)

    logger.info(
        f"Derived graph: {len(graph.nodes)} companies, {len(loops)} loops, "
        f"{len(cycles)} cycles"
    )

    return GraphResponse(
        nodes=graph.nodes,
        edges=graph.edges,
        super_edges=bundle_edges(graph.edges),
        deals_by_id={deal.id: deal for deal in graph.deals},
        loops=loops,
        multi_party_cycles=cycles,
        hub_scores=hub_scores,
        issues=graph.issues,
        graph=graph,
        max_cycle_length=settings.max_cycle_length,
    )


def analyze_null_model(
    response: GraphResponse,
    iterations: Optional[int] = None,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    settings: Optional[Settings] = None,
) -> NullModelComparison:
    """Compare a derived graph against its configuration-model null."""
    if response.graph is None:
        raise ValueError("GraphResponse has no graph attached; use derive_graph()")
    settings = settings or default_settings

    return compare_to_null_model(
        response.graph.detection_edges,
        iterations if iterations is not None else settings.null_model_iterations,
        max_cycle_length=response.max_cycle_length,
        rng=rng,
        seed=seed if seed is not None else settings.null_model_seed,
        workers=settings.null_model_workers,
        batch_size=settings.null_model_batch_size,
        time_budget_seconds=settings.null_model_time_budget_seconds,
        alpha=settings.significance_level,
        low_count_threshold=settings.low_count_threshold,
        companies=response.graph.companies,
        loops=response.loops,
        cycles=response.multi_party_cycles,
    )


def analyze_sensitivity(
    response: GraphResponse,
    schemes: Optional[list[WeightingScheme]] = None,
) -> SensitivityAnalysis:
    """Rank stability of a derived graph's loops, cycles and hubs."""
    if response.graph is None:
        raise ValueError("GraphResponse has no graph attached; use derive_graph()")

    return run_sensitivity_analysis(
        response.graph.detection_edges,
        response.graph.companies,
        schemes,
        max_cycle_length=response.max_cycle_length,
        hub_companies=response.graph.node_companies,
    )
