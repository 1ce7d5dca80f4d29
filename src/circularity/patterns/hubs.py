"""
Company-level circularity (hub) scores.

A company's hub score is the sum of the loop and cycle scores of every
structure it takes part in, normalized against the highest hub score in the
batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from circularity.patterns.cycles import Cycle
from circularity.patterns.loops import Loop
from circularity.schemas import Company

logger = logging.getLogger(__name__)


@dataclass
class HubScore:
    """Per-company aggregate across detected loops and cycles."""

    company_id: str
    company_name: str
    company_slug: str

    hub_score: float = 0.0
    normalized_hub_score: float = 0.0  # 0-1, relative to the batch maximum

    loop_count: int = 0
    cycle_count: int = 0
    avg_score: float = 0.0
    total_circulation: float = 0.0  # each edge counted once per company

    loop_ids: list[str] = field(default_factory=list)
    cycle_ids: list[str] = field(default_factory=list)

    @property
    def structure_count(self) -> int:
        return self.loop_count + self.cycle_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "company_id": self.company_id,
            "company_name": self.company_name,
            "company_slug": self.company_slug,
            "hub_score": self.hub_score,
            "normalized_hub_score": self.normalized_hub_score,
            "loop_count": self.loop_count,
            "cycle_count": self.cycle_count,
            "structure_count": self.structure_count,
            "avg_score": self.avg_score,
            "total_circulation": self.total_circulation,
            "loop_ids": list(self.loop_ids),
            "cycle_ids": list(self.cycle_ids),
        }


def compute_hub_scores(
    companies: Iterable[Company],
    loops: list[Loop],
    cycles: list[Cycle],
) -> list[HubScore]:
    """
    Aggregate loop and cycle scores per company.

    Returns hub scores for every company given, sorted by raw score
    (descending) with ties broken by slug.
    """
    hubs: dict[str, HubScore] = {}
    edge_amounts: dict[str, dict[str, float]] = {}

    for company in companies:
        hubs[company.id] = HubScore(
            company_id=company.id,
            company_name=company.name,
            company_slug=company.slug,
        )
        edge_amounts[company.id] = {}

    for loop in loops:
        for company_id in loop.company_ids:
            hub = hubs.get(company_id)
            if hub is None:
                continue
            hub.hub_score += loop.loop_score
            hub.loop_count += 1
            hub.loop_ids.append(loop.id)
            for edge in loop.edges:
                if edge.total_amount_usd is not None:
                    edge_amounts[company_id][edge.id] = edge.total_amount_usd

    for cycle in cycles:
        for company_id in cycle.company_ids:
            hub = hubs.get(company_id)
            if hub is None:
                continue
            hub.hub_score += cycle.cycle_score
            hub.cycle_count += 1
            hub.cycle_ids.append(cycle.id)
            for edge in cycle.edges:
                if edge.total_amount_usd is not None:
                    edge_amounts[company_id][edge.id] = edge.total_amount_usd

    max_score = max((h.hub_score for h in hubs.values()), default=0.0)

    for company_id, hub in hubs.items():
        count = hub.structure_count
        hub.avg_score = hub.hub_score / count if count > 0 else 0.0
        hub.normalized_hub_score = hub.hub_score / max_score if max_score > 0 else 0.0
        hub.total_circulation = sum(edge_amounts[company_id].values())

    result = sorted(hubs.values(), key=lambda h: (-h.hub_score, h.company_slug))
    logger.debug(f"Computed hub scores for {len(result)} companies (max {max_score:.4f})")
    return result
