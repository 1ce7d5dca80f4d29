"""
Pydantic models for the records supplied by the data layer.

These models describe companies, deals, deal parties and sources as they
arrive from the data-access collaborator, separate from the derived graph
records produced by the engine.
"""

import math
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class DealType(str, Enum):
    """Kind of economic event."""

    INVESTMENT = "INVESTMENT"
    CLOUD_COMMITMENT = "CLOUD_COMMITMENT"
    SUPPLY = "SUPPLY"
    PARTNERSHIP = "PARTNERSHIP"
    ACQUISITION = "ACQUISITION"
    REVENUE_SHARE = "REVENUE_SHARE"
    OTHER = "OTHER"


class FlowType(str, Enum):
    """What moves along an edge."""

    MONEY = "MONEY"
    COMPUTE_HARDWARE = "COMPUTE_HARDWARE"
    SERVICE = "SERVICE"
    EQUITY = "EQUITY"


class DataStatus(str, Enum):
    """How well established a deal is."""

    CONFIRMED = "CONFIRMED"
    ESTIMATED = "ESTIMATED"
    RUMORED = "RUMORED"
    UNKNOWN = "UNKNOWN"


class PartyRole(str, Enum):
    """Role a company plays in a deal."""

    INVESTOR = "INVESTOR"
    INVESTEE = "INVESTEE"
    CUSTOMER = "CUSTOMER"
    SUPPLIER = "SUPPLIER"
    ACQUIRER = "ACQUIRER"
    TARGET = "TARGET"
    PARTNER = "PARTNER"
    OTHER = "OTHER"


class FlowDirection(str, Enum):
    """Explicit direction of value for a party, when the source states it."""

    OUTFLOW = "OUTFLOW"
    INFLOW = "INFLOW"
    BIDIRECTIONAL = "BIDIRECTIONAL"
    NONE = "NONE"


class SourceType(str, Enum):
    """Provenance category of a source."""

    PRESS_RELEASE = "PRESS_RELEASE"
    NEWS = "NEWS"
    FILING = "FILING"
    BLOG = "BLOG"
    OTHER = "OTHER"


class PartnershipPolicy(str, Enum):
    """How undirected (partnership) deals enter loop/cycle detection."""

    BIDIRECTIONAL = "BIDIRECTIONAL"  # edge pair, counted like directed edges
    DISPLAY_ONLY = "DISPLAY_ONLY"  # edge pair shown, ignored by detectors
    SKIP = "SKIP"  # no edges at all


DEFAULT_CONFIDENCE = 3.0


class Company(BaseModel):
    """Company identity node, owned by the data layer."""

    id: str
    name: str
    slug: str
    ticker: Optional[str] = None
    description: Optional[str] = None
    logo_url: Optional[str] = None
    valuation_usd: Optional[float] = None


class Source(BaseModel):
    """Provenance record for a deal."""

    id: str
    source_type: SourceType = SourceType.OTHER
    publisher: str = ""
    url: str = ""
    published_at: Optional[datetime] = None
    excerpt: Optional[str] = None
    reliability: int = Field(default=3, ge=1, le=5)
    confidence: int = Field(default=3, ge=1, le=5)


class DealParty(BaseModel):
    """A company's participation in a deal."""

    company_id: str
    role: PartyRole
    direction: FlowDirection = FlowDirection.NONE
    notes: Optional[str] = None


def _coerce_amount(value: Any) -> Optional[float]:
    """Map malformed amounts (negative, zero, non-numeric) to undetermined."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(amount) or math.isinf(amount) or amount <= 0:
        return None
    return amount


class Deal(BaseModel):
    """An economic event between two or more companies."""

    id: str
    title: str = ""
    summary: str = ""
    deal_type: DealType
    flow_type: FlowType
    announced_at: date
    data_status: DataStatus = DataStatus.UNKNOWN

    # At most one representation is authoritative; exact beats range
    amount_usd: Optional[float] = None
    amount_usd_min: Optional[float] = None
    amount_usd_max: Optional[float] = None
    amount_text: Optional[str] = None

    tags: set[str] = Field(default_factory=set)
    parties: list[DealParty] = Field(default_factory=list)
    sources: list[Source] = Field(default_factory=list)

    @field_validator("amount_usd", "amount_usd_min", "amount_usd_max", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Optional[float]:
        return _coerce_amount(v)

    @field_validator("announced_at", mode="before")
    @classmethod
    def coerce_announced_at(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return v.date()
        return v

    @model_validator(mode="after")
    def check_range(self) -> "Deal":
        """Drop an inverted range rather than trusting either bound."""
        if (
            self.amount_usd_min is not None
            and self.amount_usd_max is not None
            and self.amount_usd_min > self.amount_usd_max
        ):
            self.amount_usd_min = None
            self.amount_usd_max = None
        return self

    @property
    def determined_amount(self) -> Optional[float]:
        """Authoritative USD amount, or None when undetermined."""
        if self.amount_usd is not None:
            return self.amount_usd
        if self.amount_usd_max is not None:
            return self.amount_usd_max
        return self.amount_usd_min

    @property
    def average_confidence(self) -> float:
        """Mean source confidence, defaulting to 3 without sources."""
        if not self.sources:
            return DEFAULT_CONFIDENCE
        return sum(s.confidence for s in self.sources) / len(self.sources)

    def to_dict(self, companies: Optional[dict[str, Company]] = None) -> dict[str, Any]:
        """Full deal detail for drill-down."""
        companies = companies or {}
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "deal_type": self.deal_type.value,
            "flow_type": self.flow_type.value,
            "announced_at": self.announced_at.isoformat(),
            "amount_usd": self.amount_usd,
            "amount_usd_min": self.amount_usd_min,
            "amount_usd_max": self.amount_usd_max,
            "amount_text": self.amount_text,
            "data_status": self.data_status.value,
            "tags": sorted(self.tags),
            "parties": [
                {
                    "company_id": p.company_id,
                    "company_name": companies[p.company_id].name if p.company_id in companies else None,
                    "company_slug": companies[p.company_id].slug if p.company_id in companies else None,
                    "role": p.role.value,
                    "direction": p.direction.value,
                    "notes": p.notes,
                }
                for p in self.parties
            ],
            "sources": [
                {
                    "id": s.id,
                    "source_type": s.source_type.value,
                    "publisher": s.publisher,
                    "url": s.url,
                    "published_at": s.published_at.isoformat() if s.published_at else None,
                    "excerpt": s.excerpt,
                    "reliability": s.reliability,
                    "confidence": s.confidence,
                }
                for s in self.sources
            ],
        }


class GraphFilters(BaseModel):
    """Deal filters; an omitted filter means no restriction."""

    deal_types: Optional[set[DealType]] = None
    flow_types: Optional[set[FlowType]] = None
    min_confidence: Optional[int] = Field(default=None, ge=1, le=5)
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def matches(self, deal: Deal) -> bool:
        """Check whether a deal passes every filter."""
        if self.deal_types and deal.deal_type not in self.deal_types:
            return False
        if self.flow_types and deal.flow_type not in self.flow_types:
            return False
        if self.min_confidence is not None and deal.average_confidence < self.min_confidence:
            return False
        if self.date_from and deal.announced_at < self.date_from:
            return False
        if self.date_to and deal.announced_at > self.date_to:
            return False
        return True
