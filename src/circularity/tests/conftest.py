"""
Pytest configuration and shared fixtures for circularity tests.
"""

from datetime import date
from typing import Callable, Optional

import pytest

from circularity.config import Settings
from circularity.graph.models import Edge
from circularity.schemas import (
    Company,
    Deal,
    DealParty,
    DealType,
    FlowDirection,
    FlowType,
    PartyRole,
    Source,
)


@pytest.fixture
def companies() -> dict[str, Company]:
    """Six companies keyed by id; ids and slugs sort in the same order."""
    names = ["Alpha", "Beta", "Gamma", "Delta", "Epsilon", "Zeta"]
    result = {}
    for i, name in enumerate(names, start=1):
        company = Company(id=f"c{i}", name=f"{name} Inc", slug=f"{i}-{name.lower()}")
        result[company.id] = company
    return result


@pytest.fixture
def company_list(companies) -> list[Company]:
    return list(companies.values())


@pytest.fixture
def make_deal() -> Callable[..., Deal]:
    """Factory for a two-party deal with explicit direction from -> to."""

    def _make(
        deal_id: str,
        from_id: str,
        to_id: str,
        *,
        deal_type: DealType = DealType.INVESTMENT,
        flow_type: FlowType = FlowType.MONEY,
        amount: Optional[float] = None,
        confidence: Optional[int] = None,
        announced_at: date = date(2024, 6, 1),
        **kwargs,
    ) -> Deal:
        sources = []
        if confidence is not None:
            sources.append(Source(id=f"{deal_id}-src", confidence=confidence))
        return Deal(
            id=deal_id,
            title=f"Deal {deal_id}",
            deal_type=deal_type,
            flow_type=flow_type,
            announced_at=announced_at,
            amount_usd=amount,
            parties=[
                DealParty(company_id=from_id, role=PartyRole.OTHER, direction=FlowDirection.OUTFLOW),
                DealParty(company_id=to_id, role=PartyRole.OTHER, direction=FlowDirection.INFLOW),
            ],
            sources=sources,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_edge() -> Callable[..., Edge]:
    """Factory for an aggregated edge, bypassing the builder."""
    counter = {"n": 0}

    def _make(
        from_id: str,
        to_id: str,
        *,
        flow_type: FlowType = FlowType.MONEY,
        deal_type: DealType = DealType.INVESTMENT,
        amount: Optional[float] = None,
        confidence: float = 3.0,
        deal_ids: Optional[list[str]] = None,
    ) -> Edge:
        counter["n"] += 1
        return Edge(
            from_id=from_id,
            to_id=to_id,
            deal_type=deal_type,
            flow_type=flow_type,
            deal_ids=deal_ids if deal_ids is not None else [f"d{counter['n']}"],
            total_amount_usd=amount,
            undetermined_deal_count=0 if amount is not None else 1,
            avg_confidence=confidence,
        )

    return _make


@pytest.fixture
def scenario_loop_deals(make_deal) -> list[Deal]:
    """A -> B money $10B and B -> A service $5B, both confidence 4."""
    return [
        make_deal("d1", "c1", "c2", flow_type=FlowType.MONEY, amount=10e9, confidence=4),
        make_deal(
            "d2", "c2", "c1",
            deal_type=DealType.CLOUD_COMMITMENT,
            flow_type=FlowType.SERVICE,
            amount=5e9,
            confidence=4,
        ),
    ]


@pytest.fixture
def scenario_cycle_deals(make_deal) -> list[Deal]:
    """A -> B -> C -> A, $1B per hop, distinct flow types, confidence 5."""
    return [
        make_deal("d1", "c1", "c2", flow_type=FlowType.MONEY, amount=1e9, confidence=5),
        make_deal(
            "d2", "c2", "c3",
            deal_type=DealType.SUPPLY,
            flow_type=FlowType.COMPUTE_HARDWARE,
            amount=1e9,
            confidence=5,
        ),
        make_deal(
            "d3", "c3", "c1",
            deal_type=DealType.CLOUD_COMMITMENT,
            flow_type=FlowType.SERVICE,
            amount=1e9,
            confidence=5,
        ),
    ]


@pytest.fixture
def reciprocal_ring_edges(make_edge) -> list[Edge]:
    """Twelve companies in a ring, each neighbor pair trading both ways."""
    edges = []
    ids = [f"n{i:02d}" for i in range(12)]
    for i, a in enumerate(ids):
        b = ids[(i + 1) % len(ids)]
        edges.append(make_edge(a, b, amount=1e8))
        edges.append(make_edge(b, a, flow_type=FlowType.SERVICE, amount=1e8))
    return edges


@pytest.fixture
def ring_companies() -> dict[str, Company]:
    return {
        f"n{i:02d}": Company(id=f"n{i:02d}", name=f"Ring {i}", slug=f"ring-{i:02d}")
        for i in range(12)
    }


@pytest.fixture
def test_settings() -> Settings:
    """Settings for fast, reproducible in-process runs."""
    return Settings(
        _env_file=None,
        null_model_iterations=100,
        null_model_workers=1,
        null_model_seed=7,
    )
