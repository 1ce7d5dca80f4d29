"""
Deal graph node and edge types.

Derived, never persisted: rebuilt from deal records on every derivation.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from circularity.schemas import Company, DealType, FlowType


@dataclass
class Node:
    """Company projection for graph consumers."""

    id: str
    name: str
    slug: str
    ticker: Optional[str] = None
    description: Optional[str] = None
    logo_url: Optional[str] = None
    valuation_usd: Optional[float] = None

    @classmethod
    def from_company(cls, company: Company) -> "Node":
        return cls(
            id=company.id,
            name=company.name,
            slug=company.slug,
            ticker=company.ticker,
            description=company.description,
            logo_url=company.logo_url,
            valuation_usd=company.valuation_usd,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "ticker": self.ticker,
            "description": self.description,
            "logo_url": self.logo_url,
            "valuation_usd": self.valuation_usd,
        }


@dataclass
class Edge:
    """
    Directed aggregate of deals sharing (from, to, deal type, flow type).

    total_amount_usd is the sum of determined deal amounts, or None when no
    contributing deal has a determined amount.
    """

    from_id: str
    to_id: str
    deal_type: DealType
    flow_type: FlowType
    is_directional: bool = True
    deal_ids: list[str] = field(default_factory=list)
    total_amount_usd: Optional[float] = None
    undetermined_deal_count: int = 0
    amount_text: Optional[str] = None
    avg_confidence: float = 3.0

    @property
    def id(self) -> str:
        return f"{self.from_id}-{self.to_id}-{self.deal_type.value}-{self.flow_type.value}"

    @property
    def pair(self) -> tuple[str, str]:
        return (self.from_id, self.to_id)

    @property
    def has_amount(self) -> bool:
        return self.total_amount_usd is not None

    @property
    def amount_or_zero(self) -> float:
        return self.total_amount_usd or 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_id,
            "to": self.to_id,
            "edge_type": self.deal_type.value,
            "flow_type": self.flow_type.value,
            "is_directional": self.is_directional,
            "total_amount_usd": self.total_amount_usd,
            "undetermined_deal_count": self.undetermined_deal_count,
            "amount_text": self.amount_text,
            "avg_confidence": self.avg_confidence,
            "deal_ids": list(self.deal_ids),
        }


@dataclass
class FlowBreakdown:
    """Per-flow-type slice of a super edge."""

    flow_type: FlowType
    amount: Optional[float]
    deal_count: int
    edge_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "flow_type": self.flow_type.value,
            "amount": self.amount,
            "deal_count": self.deal_count,
            "edge_ids": list(self.edge_ids),
        }


@dataclass
class SuperEdge:
    """All edges between an unordered company pair, bundled for display."""

    id: str  # "a--b", ids sorted
    from_id: str
    to_id: str
    total_amount_usd: Optional[float]
    edge_count: int
    deal_count: int
    flow_breakdown: list[FlowBreakdown] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    importance: float = 0.0  # 0-1 visual weight

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_id,
            "to": self.to_id,
            "total_amount_usd": self.total_amount_usd,
            "edge_count": self.edge_count,
            "deal_count": self.deal_count,
            "flow_breakdown": [f.to_dict() for f in self.flow_breakdown],
            "edges": [e.to_dict() for e in self.edges],
            "importance": self.importance,
        }


@dataclass
class BuildIssue:
    """A deal skipped during graph building, with the reason."""

    deal_id: str
    reason: str
    company_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "deal_id": self.deal_id,
            "reason": self.reason,
            "company_id": self.company_id,
        }
