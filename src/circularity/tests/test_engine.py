"""
Tests for the engine entry points.
"""

import json

import pytest

from circularity.config import Settings
from circularity.engine import GraphResponse, analyze_null_model, analyze_sensitivity, derive_graph
from circularity.patterns.cycles import MAX_CYCLE_LENGTH
from circularity.schemas import (
    Deal,
    DealParty,
    DealType,
    FlowType,
    GraphFilters,
    PartnershipPolicy,
    PartyRole,
)


@pytest.fixture
def partnership_deal() -> Deal:
    return Deal(
        id="p1",
        deal_type=DealType.PARTNERSHIP,
        flow_type=FlowType.SERVICE,
        announced_at="2024-03-01",
        parties=[
            DealParty(company_id="c4", role=PartyRole.PARTNER),
            DealParty(company_id="c5", role=PartyRole.PARTNER),
        ],
    )


class TestDeriveGraph:
    """Tests for the graph response."""

    def test_scenario_loop(self, company_list, scenario_loop_deals, test_settings):
        response = derive_graph(company_list, scenario_loop_deals, settings=test_settings)

        assert [n.id for n in response.nodes] == ["c1", "c2"]
        assert len(response.edges) == 2
        assert len(response.loops) == 1
        assert response.loops[0].loop_score == pytest.approx(0.8525)
        assert response.multi_party_cycles == []
        assert set(response.deals_by_id) == {"d1", "d2"}
        assert [h.company_id for h in response.hub_scores] == ["c1", "c2"]
        assert response.hub_scores[0].normalized_hub_score == 1.0

    def test_max_cycle_length_follows_settings(self, company_list, scenario_cycle_deals):
        empty = GraphResponse(
            nodes=[], edges=[], super_edges=[], deals_by_id={},
            loops=[], multi_party_cycles=[], hub_scores=[],
        )
        short = Settings(_env_file=None, max_cycle_length=3, null_model_workers=1)
        response = derive_graph(company_list, scenario_cycle_deals, settings=short)

        assert empty.max_cycle_length == MAX_CYCLE_LENGTH
        assert response.max_cycle_length == 3
        assert analyze_null_model(response, iterations=5, settings=short).config.max_cycle_length == 3

    def test_hub_scores_cover_graph_nodes_only(self, company_list, scenario_cycle_deals, test_settings):
        response = derive_graph(company_list, scenario_cycle_deals, settings=test_settings)

        assert {h.company_id for h in response.hub_scores} == {"c1", "c2", "c3"}
        assert len(response.multi_party_cycles) == 1

    def test_filters_and_issues(self, company_list, make_deal, test_settings):
        deals = [
            make_deal("d1", "c1", "c2", confidence=5),
            make_deal("d2", "c2", "c1", confidence=1),
            make_deal("d3", "c1", "missing", confidence=5),
        ]
        response = derive_graph(
            company_list, deals, GraphFilters(min_confidence=3), settings=test_settings
        )

        assert set(response.deals_by_id) == {"d1"}
        assert response.loops == []
        assert [i.deal_id for i in response.issues] == ["d3"]

    def test_partnership_policy_from_settings(self, company_list, partnership_deal):
        counted = derive_graph(
            company_list, [partnership_deal], settings=Settings(_env_file=None)
        )
        display = derive_graph(
            company_list,
            [partnership_deal],
            settings=Settings(_env_file=None, partnership_policy=PartnershipPolicy.DISPLAY_ONLY),
        )

        assert len(counted.loops) == 1
        assert len(display.edges) == 2
        assert display.loops == []
        assert all(h.hub_score == 0.0 for h in display.hub_scores)

    def test_to_dict_is_json_serializable(self, company_list, scenario_cycle_deals, test_settings):
        data = derive_graph(company_list, scenario_cycle_deals, settings=test_settings).to_dict()
        encoded = json.dumps(data)

        assert "multi_party_cycles" in data
        assert data["deals_by_id"]["d1"]["parties"][0]["company_slug"] == "1-alpha"
        assert encoded

    def test_deterministic(self, company_list, scenario_cycle_deals, test_settings):
        first = derive_graph(company_list, scenario_cycle_deals, settings=test_settings)
        second = derive_graph(company_list, scenario_cycle_deals, settings=test_settings)

        assert first.to_dict() == second.to_dict()


class TestOnDemandAnalyses:
    def test_null_model_uses_settings(self, company_list, scenario_loop_deals, test_settings):
        response = derive_graph(company_list, scenario_loop_deals, settings=test_settings)
        first = analyze_null_model(response, settings=test_settings)
        second = analyze_null_model(response, settings=test_settings)

        assert first.iterations_requested == 100
        assert first.config.workers == 1
        assert first.distributions["loop_count"].values == second.distributions["loop_count"].values
        assert any("Too few edges" in w for w in first.warnings)
        assert first.observed["avg_loop_score"] == pytest.approx(0.8525)

    def test_null_model_iterations_override(self, company_list, scenario_cycle_deals, test_settings):
        response = derive_graph(company_list, scenario_cycle_deals, settings=test_settings)
        result = analyze_null_model(response, iterations=10, seed=3, settings=test_settings)

        assert result.iterations_completed == 10

    def test_sensitivity(self, company_list, scenario_loop_deals, test_settings):
        response = derive_graph(company_list, scenario_loop_deals, settings=test_settings)
        analysis = analyze_sensitivity(response)

        assert len(analysis.schemes) == 5
        assert analysis.ranking_stability.consistent
