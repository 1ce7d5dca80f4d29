"""
Graph derivation from deal records.

Turns a list of deals into a directed multigraph of company nodes and
aggregated edges:
- Filters are applied per deal before aggregation
- Party roles (or explicit party directions) resolve into (from, to) pairs
- Deals sharing (from, to, deal type, flow type) collapse into one edge
- Deals that reference unknown companies are reported and skipped
"""

import logging
from dataclasses import dataclass, field
from itertools import combinations, product
from typing import Iterable, Optional, Sequence, Union

import networkx as nx

from circularity.graph.models import BuildIssue, Edge, FlowBreakdown, Node, SuperEdge
from circularity.schemas import (
    Company,
    Deal,
    DealParty,
    DealType,
    FlowDirection,
    FlowType,
    GraphFilters,
    PartnershipPolicy,
    PartyRole,
)

logger = logging.getLogger(__name__)

CompanyScope = Union[Sequence[str], str]

# Flow types that travel from supplier to customer; the rest are payments
SUPPLIER_TO_CUSTOMER_FLOWS = {FlowType.COMPUTE_HARDWARE, FlowType.SERVICE}

MULTIPLE_AMOUNTS_TEXT = "Multiple amounts"


class UnknownCompanyError(Exception):
    """A deal party references a company the data layer did not supply."""

    def __init__(self, deal_id: str, company_id: str):
        self.deal_id = deal_id
        self.company_id = company_id
        super().__init__(f"Deal {deal_id} references unknown company {company_id}")


@dataclass
class DirectionResult:
    """Resolved flow pairs for one deal."""

    pairs: list[tuple[str, str]]
    is_directional: bool


def _unique_ids(parties: Iterable[DealParty]) -> list[str]:
    ids = []
    for party in parties:
        if party.company_id not in ids:
            ids.append(party.company_id)
    return ids


def _with_role(parties: list[DealParty], role: PartyRole) -> list[str]:
    return _unique_ids(p for p in parties if p.role == role)


def _with_direction(parties: list[DealParty], direction: FlowDirection) -> list[str]:
    return _unique_ids(p for p in parties if p.direction == direction)


def infer_direction(deal: Deal) -> DirectionResult:
    """
    Resolve a deal's parties into directed (from, to) pairs.

    Rules, first match wins:
    1. Explicit OUTFLOW parties -> INFLOW parties
    2. INVESTOR -> INVESTEE
    3. CUSTOMER/SUPPLIER: payments (money, equity) flow customer -> supplier,
       hardware and services flow supplier -> customer
    4. ACQUIRER -> TARGET
    5. PARTNER parties, or failing all else any two parties: undirected

    Undirected results list each unordered pair once; the caller decides
    how to expand them.
    """
    parties = deal.parties

    outflow = _with_direction(parties, FlowDirection.OUTFLOW)
    inflow = _with_direction(parties, FlowDirection.INFLOW)
    if outflow and inflow:
        return DirectionResult(list(product(outflow, inflow)), True)

    investors = _with_role(parties, PartyRole.INVESTOR)
    investees = _with_role(parties, PartyRole.INVESTEE)
    if investors and investees:
        return DirectionResult(list(product(investors, investees)), True)

    customers = _with_role(parties, PartyRole.CUSTOMER)
    suppliers = _with_role(parties, PartyRole.SUPPLIER)
    if customers and suppliers:
        if deal.flow_type in SUPPLIER_TO_CUSTOMER_FLOWS:
            return DirectionResult(list(product(suppliers, customers)), True)
        return DirectionResult(list(product(customers, suppliers)), True)

    acquirers = _with_role(parties, PartyRole.ACQUIRER)
    targets = _with_role(parties, PartyRole.TARGET)
    if acquirers and targets:
        return DirectionResult(list(product(acquirers, targets)), True)

    partners = _with_role(parties, PartyRole.PARTNER)
    if len(partners) >= 2:
        return DirectionResult(list(combinations(partners, 2)), False)

    everyone = _unique_ids(parties)
    if len(everyone) >= 2:
        return DirectionResult([(everyone[0], everyone[1])], False)

    return DirectionResult([], False)


def aggregate_amount_text(texts: list[str]) -> Optional[str]:
    """Collapse free-text amounts: one distinct text survives, else a marker."""
    if not texts:
        return None
    unique = list(dict.fromkeys(texts))
    if len(unique) == 1:
        return unique[0]
    return MULTIPLE_AMOUNTS_TEXT


@dataclass
class _EdgeAccumulator:
    from_id: str
    to_id: str
    deal_type: DealType
    flow_type: FlowType
    is_directional: bool = False
    deal_ids: list[str] = field(default_factory=list)
    amounts: list[float] = field(default_factory=list)
    amount_texts: list[str] = field(default_factory=list)
    confidences: list[float] = field(default_factory=list)
    undetermined: int = 0

    def add(self, deal: Deal, directional: bool) -> None:
        # One directed deal is enough to make the edge directional.
        self.is_directional = self.is_directional or directional
        self.deal_ids.append(deal.id)
        amount = deal.determined_amount
        if amount is None:
            self.undetermined += 1
        else:
            self.amounts.append(amount)
        if deal.amount_text:
            self.amount_texts.append(deal.amount_text)
        self.confidences.append(deal.average_confidence)

    def to_edge(self) -> Edge:
        return Edge(
            from_id=self.from_id,
            to_id=self.to_id,
            deal_type=self.deal_type,
            flow_type=self.flow_type,
            is_directional=self.is_directional,
            deal_ids=list(self.deal_ids),
            total_amount_usd=sum(self.amounts) if self.amounts else None,
            undetermined_deal_count=self.undetermined,
            amount_text=aggregate_amount_text(self.amount_texts),
            avg_confidence=(
                sum(self.confidences) / len(self.confidences) if self.confidences else 3.0
            ),
        )


@dataclass
class DealGraph:
    """Directed multigraph derived from deals."""

    nodes: list[Node]
    edges: list[Edge]
    deals: list[Deal]
    companies: dict[str, Company]
    partnership_policy: PartnershipPolicy = PartnershipPolicy.BIDIRECTIONAL
    issues: list[BuildIssue] = field(default_factory=list)

    @property
    def detection_edges(self) -> list[Edge]:
        """Edges that take part in loop and cycle detection."""
        if self.partnership_policy == PartnershipPolicy.DISPLAY_ONLY:
            return [e for e in self.edges if e.is_directional]
        return list(self.edges)

    @property
    def node_companies(self) -> list[Company]:
        return [self.companies[n.id] for n in self.nodes]

    def to_networkx(self) -> nx.MultiDiGraph:
        """Project onto a networkx multigraph keyed by edge id."""
        graph = nx.MultiDiGraph()
        for node in self.nodes:
            graph.add_node(node.id, name=node.name, slug=node.slug)
        for edge in self.edges:
            graph.add_edge(
                edge.from_id,
                edge.to_id,
                key=edge.id,
                deal_type=edge.deal_type.value,
                flow_type=edge.flow_type.value,
                amount=edge.total_amount_usd,
                confidence=edge.avg_confidence,
                deal_ids=list(edge.deal_ids),
                is_directional=edge.is_directional,
            )
        return graph


class GraphBuilder:
    """
    Build a deal graph from companies and deals.

    Usage:
        builder = GraphBuilder(companies, filters=GraphFilters(min_confidence=3))
        graph = builder.build(deals)
    """

    def __init__(
        self,
        companies: Iterable[Company],
        filters: Optional[GraphFilters] = None,
        company_slugs: CompanyScope = "all",
        partnership_policy: PartnershipPolicy = PartnershipPolicy.BIDIRECTIONAL,
    ):
        self.companies: dict[str, Company] = {c.id: c for c in companies}
        self.filters = filters or GraphFilters()
        self.partnership_policy = partnership_policy

        if company_slugs == "all":
            self.scope: Optional[set[str]] = None
        else:
            wanted = set(company_slugs)
            self.scope = {c.id for c in self.companies.values() if c.slug in wanted}

    def build(self, deals: Iterable[Deal]) -> DealGraph:
        accumulators: dict[tuple[str, str, DealType, FlowType], _EdgeAccumulator] = {}
        included: list[Deal] = []
        issues: list[BuildIssue] = []

        for deal in deals:
            if not self.filters.matches(deal):
                continue
            if self.scope is not None and not any(
                p.company_id in self.scope for p in deal.parties
            ):
                continue

            try:
                self._check_parties(deal)
            except UnknownCompanyError as e:
                logger.warning(f"Skipping deal: {e}")
                issues.append(BuildIssue(deal.id, "unknown_company", e.company_id))
                continue

            direction = infer_direction(deal)
            if not direction.pairs:
                logger.warning(f"Skipping deal {deal.id}: cannot resolve direction")
                issues.append(BuildIssue(deal.id, "unresolvable_direction"))
                continue

            included.append(deal)
            for from_id, to_id, directional in self._expand(direction):
                if from_id == to_id:
                    logger.debug(f"Dropping self-pair {from_id} in deal {deal.id}")
                    continue
                if self.scope is not None and (
                    from_id not in self.scope or to_id not in self.scope
                ):
                    continue

                key = (from_id, to_id, deal.deal_type, deal.flow_type)
                acc = accumulators.get(key)
                if acc is None:
                    acc = _EdgeAccumulator(
                        from_id=from_id,
                        to_id=to_id,
                        deal_type=deal.deal_type,
                        flow_type=deal.flow_type,
                    )
                    accumulators[key] = acc
                acc.add(deal, directional)

        edges = [acc.to_edge() for acc in accumulators.values()]

        seen: dict[str, Node] = {}
        for edge in edges:
            for company_id in edge.pair:
                if company_id not in seen:
                    seen[company_id] = Node.from_company(self.companies[company_id])

        logger.info(
            f"Built graph: {len(seen)} nodes, {len(edges)} edges from "
            f"{len(included)} deals ({len(issues)} skipped)"
        )

        return DealGraph(
            nodes=list(seen.values()),
            edges=edges,
            deals=included,
            companies=self.companies,
            partnership_policy=self.partnership_policy,
            issues=issues,
        )

    def _check_parties(self, deal: Deal) -> None:
        for party in deal.parties:
            if party.company_id not in self.companies:
                raise UnknownCompanyError(deal.id, party.company_id)

    def _expand(self, direction: DirectionResult) -> list[tuple[str, str, bool]]:
        if direction.is_directional:
            return [(a, b, True) for a, b in direction.pairs]
        if self.partnership_policy == PartnershipPolicy.SKIP:
            return []
        expanded = []
        for a, b in direction.pairs:
            expanded.append((a, b, False))
            expanded.append((b, a, False))
        return expanded


def build_graph(
    companies: Iterable[Company],
    deals: Iterable[Deal],
    filters: Optional[GraphFilters] = None,
    company_slugs: CompanyScope = "all",
    partnership_policy: PartnershipPolicy = PartnershipPolicy.BIDIRECTIONAL,
) -> DealGraph:
    """Convenience wrapper around GraphBuilder."""
    builder = GraphBuilder(
        companies,
        filters=filters,
        company_slugs=company_slugs,
        partnership_policy=partnership_policy,
    )
    return builder.build(deals)


def bundle_edges(edges: list[Edge]) -> list[SuperEdge]:
    """
    Bundle edges between each unordered company pair.

    Importance is the bundle amount relative to the largest bundle, or the
    deal count relative to the busiest bundle when no amounts are known.
    """
    groups: dict[tuple[str, str], list[Edge]] = {}
    for edge in edges:
        key = tuple(sorted(edge.pair))
        groups.setdefault(key, []).append(edge)

    bundles = []
    for (a, b), group in groups.items():
        amounts = [e.total_amount_usd for e in group if e.total_amount_usd is not None]

        by_flow: dict[FlowType, FlowBreakdown] = {}
        for edge in group:
            fb = by_flow.get(edge.flow_type)
            if fb is None:
                fb = FlowBreakdown(flow_type=edge.flow_type, amount=None, deal_count=0)
                by_flow[edge.flow_type] = fb
            if edge.total_amount_usd is not None:
                fb.amount = (fb.amount or 0.0) + edge.total_amount_usd
            fb.deal_count += len(edge.deal_ids)
            fb.edge_ids.append(edge.id)

        bundles.append(SuperEdge(
            id=f"{a}--{b}",
            from_id=a,
            to_id=b,
            total_amount_usd=sum(amounts) if amounts else None,
            edge_count=len(group),
            deal_count=sum(len(e.deal_ids) for e in group),
            flow_breakdown=list(by_flow.values()),
            edges=group,
        ))

    max_amount = max((s.total_amount_usd or 0.0 for s in bundles), default=0.0)
    max_deals = max((s.deal_count for s in bundles), default=0)
    for bundle in bundles:
        if max_amount > 0:
            bundle.importance = (bundle.total_amount_usd or 0.0) / max_amount
        elif max_deals > 0:
            bundle.importance = bundle.deal_count / max_deals

    return bundles
