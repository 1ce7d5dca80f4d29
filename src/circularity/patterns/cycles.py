"""
Multi-party cycle detection and scoring.

A cycle is a directed sequence of 3 to 5 distinct companies C1 ... Ck with
an edge Ci -> Ci+1 for every i (indices mod k). Two-company cycles are
loops and are left to the loop detector.

Cycle score:

    S = wF * F + wB * B + wM * M + wC * C + wL * L

    F = 1.0 for two or more flow types, 0.7 for one, 0.5 if undeterminable
    B = 1 - log10(max hop amount / min hop amount) / 3, clamped to [0, 1];
        0.5 with fewer than two determined hop amounts
    M = (log10(total value) - 6) / 6, clamped to [0, 1]; 0 if total <= 0
    C = mean edge confidence / 5
    L = 1 / sqrt(n - 1)
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Hashable, Iterable, Iterator, Mapping, Optional, Sequence, TypeVar

from circularity.graph.models import Edge, Node
from circularity.patterns.weights import CycleWeights
from circularity.schemas import Company

logger = logging.getLogger(__name__)

MIN_CYCLE_LENGTH = 3
MAX_CYCLE_LENGTH = 5

COMPLEMENTARY_FLOW_SCORE = 1.0
IDENTICAL_FLOW_SCORE = 0.7
UNKNOWN_FLOW_SCORE = 0.5
NEUTRAL_BALANCE = 0.5

T = TypeVar("T", bound=Hashable)

_EXHAUSTED = object()


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def check_max_length(max_length: int) -> None:
    if not MIN_CYCLE_LENGTH <= max_length <= MAX_CYCLE_LENGTH:
        raise ValueError(
            f"max_length must be between {MIN_CYCLE_LENGTH} and {MAX_CYCLE_LENGTH}, got {max_length}"
        )


def build_adjacency(pairs: Iterable[tuple[T, T]]) -> dict[T, list[T]]:
    """Successor lists in first-seen order, parallel edges and self-pairs collapsed."""
    adjacency: dict[T, dict[T, None]] = {}
    for a, b in pairs:
        adjacency.setdefault(a, {})
        adjacency.setdefault(b, {})
        if a != b:
            adjacency[a][b] = None
    return {node: list(succ) for node, succ in adjacency.items()}


def enumerate_cycles(
    adjacency: Mapping[T, Sequence[T]],
    max_length: int = MAX_CYCLE_LENGTH,
    min_length: int = MIN_CYCLE_LENGTH,
) -> Iterator[tuple[T, ...]]:
    """
    Enumerate elementary directed cycles with min_length..max_length nodes.

    Depth-first search from every node using an explicit path/iterator stack.
    A search from a start node only extends through nodes ordered after it,
    so each directed cycle is produced once, beginning at its earliest node.
    """
    order = {node: i for i, node in enumerate(adjacency)}

    for start, start_index in order.items():
        path = [start]
        on_path = {start}
        stack = [iter(adjacency[start])]

        while stack:
            nxt = next(stack[-1], _EXHAUSTED)
            if nxt is _EXHAUSTED:
                stack.pop()
                on_path.discard(path.pop())
                continue

            if nxt == start:
                if len(path) >= min_length:
                    yield tuple(path)
                continue

            nxt_index = order.get(nxt)
            if nxt_index is None or nxt_index < start_index:
                continue
            if nxt in on_path or len(path) >= max_length:
                continue

            path.append(nxt)
            on_path.add(nxt)
            stack.append(iter(adjacency[nxt]))


def canonical_rotation(sequence: Sequence[T], key: Optional[Callable[[T], Any]] = None) -> tuple[T, ...]:
    """Rotation of the sequence whose keys are lexicographically smallest."""
    if not sequence:
        return ()
    key = key or (lambda item: item)
    n = len(sequence)
    rotations = [tuple(sequence[i:]) + tuple(sequence[:i]) for i in range(n)]
    return min(rotations, key=lambda rot: [key(item) for item in rot])


@dataclass
class CycleCounts:
    """Cycle counts by length, used for null model trials."""

    total: int = 0
    by_length: dict[int, int] = field(default_factory=dict)

    def length(self, n: int) -> int:
        return self.by_length.get(n, 0)


def count_cycles_by_length(
    pairs: Iterable[tuple[T, T]],
    max_length: int = MAX_CYCLE_LENGTH,
) -> CycleCounts:
    """Count distinct directed cycles of each length over (from, to) pairs."""
    seen: set[tuple] = set()
    for cycle in enumerate_cycles(build_adjacency(pairs), max_length):
        seen.add(canonical_rotation(cycle))

    counts = CycleCounts(by_length={n: 0 for n in range(MIN_CYCLE_LENGTH, max_length + 1)})
    for cycle in seen:
        counts.by_length[len(cycle)] += 1
    counts.total = len(seen)
    return counts


@dataclass
class Cycle:
    """A detected multi-party circular flow."""

    id: str  # canonical slug rotation joined by "--"
    companies: list[Node]
    hops: list[list[Edge]]  # hops[i]: edges companies[i] -> companies[i + 1]
    total_value: float
    deal_count: int

    flow_score: float
    balance_score: float
    magnitude_score: float
    confidence_score: float
    length_score: float
    cycle_score: float

    @property
    def length(self) -> int:
        return len(self.companies)

    @property
    def company_ids(self) -> list[str]:
        return [c.id for c in self.companies]

    @property
    def edges(self) -> list[Edge]:
        return [edge for hop in self.hops for edge in hop]

    def rescore(self, weights: CycleWeights) -> "Cycle":
        """Copy of this cycle scored under different weights."""
        return replace(
            self,
            cycle_score=weighted_cycle_score(
                self.flow_score,
                self.balance_score,
                self.magnitude_score,
                self.confidence_score,
                self.length_score,
                weights,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "length": self.length,
            "companies": [{"id": c.id, "name": c.name, "slug": c.slug} for c in self.companies],
            "edges": [e.to_dict() for e in self.edges],
            "total_value": self.total_value,
            "deal_count": self.deal_count,
            "components": {
                "flow": self.flow_score,
                "balance": self.balance_score,
                "magnitude": self.magnitude_score,
                "confidence": self.confidence_score,
                "length": self.length_score,
            },
            "cycle_score": self.cycle_score,
        }


def flow_component(edges: list[Edge]) -> float:
    flow_types = {e.flow_type for e in edges if e.flow_type is not None}
    if not flow_types:
        return UNKNOWN_FLOW_SCORE
    if len(flow_types) >= 2:
        return COMPLEMENTARY_FLOW_SCORE
    return IDENTICAL_FLOW_SCORE


def balance_component(hop_amounts: list[Optional[float]]) -> float:
    determined = [a for a in hop_amounts if a is not None and a > 0]
    if len(determined) < 2:
        return NEUTRAL_BALANCE
    return _clamp(1 - math.log10(max(determined) / min(determined)) / 3)


def magnitude_component(total_value: float) -> float:
    if total_value <= 0:
        return 0.0
    return _clamp((math.log10(total_value) - 6) / 6)


def length_component(n: int) -> float:
    return 1 / math.sqrt(n - 1)


def weighted_cycle_score(
    flow: float,
    balance: float,
    magnitude: float,
    confidence: float,
    length: float,
    weights: CycleWeights,
) -> float:
    score = (
        weights.flow * flow
        + weights.balance * balance
        + weights.magnitude * magnitude
        + weights.confidence * confidence
        + weights.length * length
    )
    return _clamp(score)


def score_cycle(
    companies: list[Node],
    hops: list[list[Edge]],
    weights: Optional[CycleWeights] = None,
) -> Cycle:
    """Build a scored Cycle from its canonical company order and hop edges."""
    weights = weights or CycleWeights()
    edges = [edge for hop in hops for edge in hop]

    hop_amounts: list[Optional[float]] = []
    for hop in hops:
        amounts = [e.total_amount_usd for e in hop if e.total_amount_usd is not None]
        hop_amounts.append(sum(amounts) if amounts else None)

    total_value = sum(e.total_amount_usd for e in edges if e.total_amount_usd is not None)
    deal_ids = {deal_id for e in edges for deal_id in e.deal_ids}
    confidences = [e.avg_confidence for e in edges if e.avg_confidence is not None]

    flow = flow_component(edges)
    balance = balance_component(hop_amounts)
    magnitude = magnitude_component(total_value)
    confidence = _clamp(sum(confidences) / len(confidences) / 5) if confidences else 0.6
    length = length_component(len(companies))

    return Cycle(
        id="--".join(c.slug for c in companies),
        companies=companies,
        hops=hops,
        total_value=total_value,
        deal_count=len(deal_ids),
        flow_score=flow,
        balance_score=balance,
        magnitude_score=magnitude,
        confidence_score=confidence,
        length_score=length,
        cycle_score=weighted_cycle_score(flow, balance, magnitude, confidence, length, weights),
    )


def detect_cycles(
    edges: list[Edge],
    companies: Mapping[str, Company],
    max_length: int = MAX_CYCLE_LENGTH,
    weights: Optional[CycleWeights] = None,
) -> list[Cycle]:
    """
    Detect and score directed cycles of 3 to max_length companies.

    Args:
        edges: Aggregated graph edges
        companies: Company lookup by id, for slugs and names
        max_length: Longest cycle to enumerate (3-5)
        weights: Cycle score weights (defaults if None)

    Returns:
        One Cycle per canonical rotation, highest score first
    """
    check_max_length(max_length)

    by_pair: dict[tuple[str, str], list[Edge]] = {}
    for edge in edges:
        if edge.from_id != edge.to_id:
            by_pair.setdefault(edge.pair, []).append(edge)

    def slug_key(company_id: str) -> tuple[str, str]:
        return (companies[company_id].slug, company_id)

    cycles: dict[str, Cycle] = {}
    for found in enumerate_cycles(build_adjacency(by_pair.keys()), max_length):
        ordered = canonical_rotation(found, key=slug_key)
        cycle_id = "--".join(companies[c].slug for c in ordered)
        if cycle_id in cycles:
            continue

        n = len(ordered)
        hops = [by_pair[(ordered[i], ordered[(i + 1) % n])] for i in range(n)]
        nodes = [Node.from_company(companies[c]) for c in ordered]
        cycles[cycle_id] = score_cycle(nodes, hops, weights)

    result = sorted(cycles.values(), key=lambda c: (-c.cycle_score, c.id))
    logger.debug(f"Detected {len(result)} cycles (max length {max_length}) over {len(edges)} edges")
    return result
