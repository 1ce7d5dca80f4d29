"""
Two-party loop detection and scoring.

A loop is an unordered company pair {A, B} with at least one edge A -> B
and at least one edge B -> A. Each loop is scored as

    S = wD * D + wB * B + wC * C

    D = 1.0 if the two representative edges carry different flow types, else 0.7
    B = 0.5 + 0.5 * min(amount) / max(amount), 0.5 when either is undetermined
    C = (confidence1 + confidence2) / 10
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping, Optional

from circularity.graph.models import Edge, Node
from circularity.patterns.weights import LoopWeights
from circularity.schemas import Company

logger = logging.getLogger(__name__)

DIVERSE_FLOW_SCORE = 1.0
SAME_FLOW_SCORE = 0.7
NEUTRAL_BALANCE = 0.5
DEFAULT_EDGE_CONFIDENCE = 3.0


@dataclass
class Loop:
    """A detected two-party circular flow."""

    id: str  # "slugA--slugB", slugs sorted
    company1: Node
    company2: Node
    edge1: Edge  # company1 -> company2
    edge2: Edge  # company2 -> company1

    total_circulation: float
    balance_ratio: Optional[float]  # None when either amount is undetermined
    flow_diversity: bool

    diversity_score: float
    balance_score: float
    confidence_score: float
    loop_score: float

    @property
    def company_ids(self) -> tuple[str, str]:
        return (self.company1.id, self.company2.id)

    @property
    def edges(self) -> list[Edge]:
        return [self.edge1, self.edge2]

    def rescore(self, weights: LoopWeights) -> "Loop":
        """Copy of this loop scored under different weights."""
        return replace(
            self,
            loop_score=weighted_loop_score(
                self.diversity_score, self.balance_score, self.confidence_score, weights
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "company1": {"id": self.company1.id, "name": self.company1.name, "slug": self.company1.slug},
            "company2": {"id": self.company2.id, "name": self.company2.name, "slug": self.company2.slug},
            "edge1": self.edge1.to_dict(),
            "edge2": self.edge2.to_dict(),
            "total_circulation": self.total_circulation,
            "balance_ratio": self.balance_ratio,
            "flow_diversity": self.flow_diversity,
            "components": {
                "diversity": self.diversity_score,
                "balance": self.balance_score,
                "confidence": self.confidence_score,
            },
            "loop_score": self.loop_score,
        }


def find_reciprocal_pairs(pairs: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    """
    Find unordered pairs with flow in both directions.

    Runs in O(|pairs|). Each reciprocal pair is reported once, as a sorted
    tuple, in the order its first edge appears.
    """
    pairs = list(pairs)
    present = set(pairs)
    found: list[tuple[str, str]] = []
    emitted: set[tuple[str, str]] = set()

    for a, b in pairs:
        if a == b:
            continue
        key = (a, b) if a < b else (b, a)
        if key in emitted:
            continue
        if (b, a) in present:
            emitted.add(key)
            found.append(key)

    return found


def representative_edge(edges: list[Edge]) -> Edge:
    """Largest determined amount wins; undetermined ranks lowest; first seen breaks ties."""
    return max(edges, key=lambda e: (e.total_amount_usd is not None, e.amount_or_zero))


def balance_component(amount1: Optional[float], amount2: Optional[float]) -> tuple[float, Optional[float]]:
    """Return (B, balance ratio); neutral 0.5 without two usable amounts."""
    if amount1 is None or amount2 is None:
        return NEUTRAL_BALANCE, None
    high = max(amount1, amount2)
    if high <= 0:
        return NEUTRAL_BALANCE, None
    ratio = min(amount1, amount2) / high
    return 0.5 + 0.5 * ratio, ratio


def weighted_loop_score(
    diversity: float,
    balance: float,
    confidence: float,
    weights: LoopWeights,
) -> float:
    score = (
        weights.diversity * diversity
        + weights.balance * balance
        + weights.confidence * confidence
    )
    return min(1.0, max(0.0, score))


def score_loop(
    company1: Node,
    company2: Node,
    edge1: Edge,
    edge2: Edge,
    weights: Optional[LoopWeights] = None,
) -> Loop:
    """Build a scored Loop from its two representative edges."""
    weights = weights or LoopWeights()

    diverse = edge1.flow_type != edge2.flow_type
    diversity = DIVERSE_FLOW_SCORE if diverse else SAME_FLOW_SCORE
    balance, ratio = balance_component(edge1.total_amount_usd, edge2.total_amount_usd)

    conf1 = edge1.avg_confidence if edge1.avg_confidence is not None else DEFAULT_EDGE_CONFIDENCE
    conf2 = edge2.avg_confidence if edge2.avg_confidence is not None else DEFAULT_EDGE_CONFIDENCE
    confidence = min(1.0, max(0.0, (conf1 + conf2) / 10))

    return Loop(
        id=f"{company1.slug}--{company2.slug}",
        company1=company1,
        company2=company2,
        edge1=edge1,
        edge2=edge2,
        total_circulation=edge1.amount_or_zero + edge2.amount_or_zero,
        balance_ratio=ratio,
        flow_diversity=diverse,
        diversity_score=diversity,
        balance_score=balance,
        confidence_score=confidence,
        loop_score=weighted_loop_score(diversity, balance, confidence, weights),
    )


def detect_loops(
    edges: list[Edge],
    companies: Mapping[str, Company],
    weights: Optional[LoopWeights] = None,
) -> list[Loop]:
    """
    Detect and score all two-party loops.

    Args:
        edges: Aggregated graph edges
        companies: Company lookup by id, for slugs and names
        weights: Loop score weights (defaults if None)

    Returns:
        One Loop per reciprocal company pair, highest score first
    """
    by_pair: dict[tuple[str, str], list[Edge]] = {}
    for edge in edges:
        if edge.from_id == edge.to_id:
            continue
        by_pair.setdefault(edge.pair, []).append(edge)

    loops = []
    for a, b in find_reciprocal_pairs(by_pair.keys()):
        node_a = Node.from_company(companies[a])
        node_b = Node.from_company(companies[b])
        if (node_b.slug, node_b.id) < (node_a.slug, node_a.id):
            node_a, node_b = node_b, node_a

        loops.append(score_loop(
            node_a,
            node_b,
            representative_edge(by_pair[(node_a.id, node_b.id)]),
            representative_edge(by_pair[(node_b.id, node_a.id)]),
            weights,
        ))

    loops.sort(key=lambda l: (-l.loop_score, l.id))
    logger.debug(f"Detected {len(loops)} loops over {len(edges)} edges")
    return loops
