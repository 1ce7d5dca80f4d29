"""
Repository-backed circularity service.

The engine is pure; this service fetches companies and deals through an
injected repository and runs the engine on them. Null model trials are
CPU-bound and run off the event loop.
"""

import asyncio
import logging
from typing import Optional, Protocol, Sequence

import numpy as np

from circularity.config import Settings, settings as default_settings
from circularity.engine import (
    GraphResponse,
    analyze_null_model,
    analyze_sensitivity,
    derive_graph,
)
from circularity.graph.builder import CompanyScope
from circularity.patterns import WeightingScheme
from circularity.schemas import Company, Deal, GraphFilters
from circularity.stats import NullModelComparison, SensitivityAnalysis

logger = logging.getLogger(__name__)


class DealRepository(Protocol):
    """Protocol for the data access the service needs."""

    async def list_companies(self, slugs: Optional[Sequence[str]] = None) -> list[Company]:
        """Get companies by slug, or every company when slugs is None."""
        ...

    async def list_deals(
        self,
        company_ids: Optional[Sequence[str]] = None,
        filters: Optional[GraphFilters] = None,
    ) -> list[Deal]:
        """Get deals with at least one party among company_ids (all if None)."""
        ...


class InMemoryDealRepository:
    """DealRepository over in-memory lists, for scripts and tests."""

    def __init__(self, companies: Sequence[Company], deals: Sequence[Deal]):
        self.companies = list(companies)
        self.deals = list(deals)

    async def list_companies(self, slugs: Optional[Sequence[str]] = None) -> list[Company]:
        if slugs is None:
            return list(self.companies)
        wanted = set(slugs)
        return [c for c in self.companies if c.slug in wanted]

    async def list_deals(
        self,
        company_ids: Optional[Sequence[str]] = None,
        filters: Optional[GraphFilters] = None,
    ) -> list[Deal]:
        deals = self.deals
        if company_ids is not None:
            ids = set(company_ids)
            deals = [d for d in deals if any(p.company_id in ids for p in d.parties)]
        if filters is not None:
            deals = [d for d in deals if filters.matches(d)]
        return list(deals)


class CircularityService:
    """
    Circularity analysis over repository data.

    Usage:
        service = CircularityService(repository)
        response = await service.get_graph(["openai", "microsoft"])
        comparison = await service.get_null_model_comparison(response, seed=7)
    """

    def __init__(self, repository: DealRepository, settings: Optional[Settings] = None):
        self.repository = repository
        self.settings = settings or default_settings

    async def get_graph(
        self,
        company_slugs: CompanyScope = "all",
        filters: Optional[GraphFilters] = None,
    ) -> GraphResponse:
        """Fetch data and derive the graph response."""
        if company_slugs == "all":
            companies = await self.repository.list_companies()
            company_ids = None
        else:
            companies, scoped = await asyncio.gather(
                self.repository.list_companies(),
                self.repository.list_companies(list(company_slugs)),
            )
            company_ids = [c.id for c in scoped]

        deals = await self.repository.list_deals(company_ids, filters)
        logger.debug(f"Fetched {len(companies)} companies and {len(deals)} deals")

        return derive_graph(
            companies,
            deals,
            filters=filters,
            company_slugs=company_slugs,
            settings=self.settings,
        )

    async def get_null_model_comparison(
        self,
        response: GraphResponse,
        iterations: Optional[int] = None,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> NullModelComparison:
        """Run the null model for a derived graph in a worker thread."""
        return await asyncio.to_thread(
            analyze_null_model,
            response,
            iterations,
            seed,
            rng,
            self.settings,
        )

    async def get_sensitivity_analysis(
        self,
        response: GraphResponse,
        schemes: Optional[list[WeightingScheme]] = None,
    ) -> SensitivityAnalysis:
        return await asyncio.to_thread(analyze_sensitivity, response, schemes)
