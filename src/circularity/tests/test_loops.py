"""
Tests for two-party loop detection and scoring.
"""

import numpy as np
import pytest

from circularity.graph import Edge, Node, build_graph
from circularity.patterns import LoopWeights, detect_loops, find_reciprocal_pairs, score_loop
from circularity.patterns.loops import balance_component, representative_edge
from circularity.schemas import DealType, FlowType


class TestFindReciprocalPairs:
    """Tests for the shared reciprocal pair core."""

    def test_finds_each_pair_once(self):
        pairs = [("a", "b"), ("b", "a"), ("a", "b"), ("b", "c"), ("c", "b"), ("c", "d")]
        assert find_reciprocal_pairs(pairs) == [("a", "b"), ("b", "c")]

    def test_no_reciprocal_edges(self):
        assert find_reciprocal_pairs([("a", "b"), ("b", "c"), ("c", "a")]) == []

    def test_ignores_self_pairs(self):
        assert find_reciprocal_pairs([("a", "a")]) == []


class TestLoopScoring:
    """Tests for loop score components."""

    def test_end_to_end_scenario(self, company_list, companies, scenario_loop_deals):
        graph = build_graph(company_list, scenario_loop_deals)
        loops = detect_loops(graph.edges, companies)

        assert len(loops) == 1
        loop = loops[0]
        assert loop.id == "1-alpha--2-beta"
        assert loop.diversity_score == 1.0
        assert loop.balance_score == pytest.approx(0.75)
        assert loop.confidence_score == pytest.approx(0.8)
        # 0.35 * 1.0 + 0.35 * 0.75 + 0.30 * 0.8
        assert loop.loop_score == pytest.approx(0.8525)
        assert loop.total_circulation == pytest.approx(15e9)
        assert loop.balance_ratio == pytest.approx(0.5)
        assert loop.flow_diversity

    def test_same_flow_type_diversity(self, make_edge, companies):
        edges = [
            make_edge("c1", "c2", flow_type=FlowType.MONEY, amount=10.0),
            make_edge("c2", "c1", flow_type=FlowType.MONEY, amount=10.0),
        ]
        loop = detect_loops(edges, companies)[0]

        assert loop.diversity_score == 0.7
        assert loop.balance_score == 1.0
        assert not loop.flow_diversity

    def test_undetermined_amount_is_neutral(self, make_edge, companies):
        edges = [
            make_edge("c1", "c2", amount=10.0),
            make_edge("c2", "c1", amount=None),
        ]
        loop = detect_loops(edges, companies)[0]

        assert loop.balance_score == 0.5
        assert loop.balance_ratio is None
        assert loop.total_circulation == 10.0

    def test_balance_guards(self):
        assert balance_component(None, 5.0) == (0.5, None)
        assert balance_component(0.0, 0.0) == (0.5, None)
        assert balance_component(4.0, 2.0) == (0.75, 0.5)

    def test_custom_weights(self, make_edge, companies):
        edges = [
            make_edge("c1", "c2", flow_type=FlowType.MONEY, confidence=5.0),
            make_edge("c2", "c1", flow_type=FlowType.SERVICE, confidence=5.0),
        ]
        loop = detect_loops(edges, companies, LoopWeights(1.0, 0.0, 0.0))[0]
        assert loop.loop_score == 1.0

    def test_rescore_keeps_components(self, make_edge, companies):
        edges = [
            make_edge("c1", "c2", amount=1.0),
            make_edge("c2", "c1", flow_type=FlowType.EQUITY, amount=4.0),
        ]
        loop = detect_loops(edges, companies)[0]
        rescored = loop.rescore(LoopWeights(0.0, 1.0, 0.0))

        assert rescored.loop_score == pytest.approx(loop.balance_score)
        assert rescored.balance_score == loop.balance_score
        assert loop.loop_score != rescored.loop_score

    def test_score_loop_direct(self, companies):
        a = Node.from_company(companies["c1"])
        b = Node.from_company(companies["c2"])
        e1 = Edge("c1", "c2", DealType.SUPPLY, FlowType.COMPUTE_HARDWARE)
        e2 = Edge("c2", "c1", DealType.SUPPLY, FlowType.MONEY)
        loop = score_loop(a, b, e1, e2)

        assert loop.confidence_score == pytest.approx(0.6)
        assert loop.balance_score == 0.5


class TestLoopDetection:
    """Tests for loop detection over edge sets."""

    def test_one_loop_per_pair_with_parallel_edges(self, make_edge, companies):
        edges = [
            make_edge("c1", "c2", flow_type=FlowType.MONEY, amount=5.0),
            make_edge("c1", "c2", flow_type=FlowType.EQUITY, amount=50.0),
            make_edge("c2", "c1", flow_type=FlowType.SERVICE, amount=20.0),
        ]
        loops = detect_loops(edges, companies)

        assert len(loops) == 1
        assert loops[0].edge1.flow_type == FlowType.EQUITY
        assert loops[0].edge2.flow_type == FlowType.SERVICE

    def test_representative_prefers_determined_then_first_seen(self, make_edge):
        undetermined = make_edge("c1", "c2")
        first = make_edge("c1", "c2", amount=7.0)
        second = make_edge("c1", "c2", amount=7.0)

        assert representative_edge([undetermined, first, second]) is first
        assert representative_edge([undetermined]) is undetermined

    def test_company1_has_smaller_slug(self, make_edge, companies):
        edges = [
            make_edge("c3", "c1"),
            make_edge("c1", "c3", flow_type=FlowType.SERVICE),
        ]
        loop = detect_loops(edges, companies)[0]

        assert loop.company1.id == "c1"
        assert loop.edge1.pair == ("c1", "c3")
        assert loop.edge2.pair == ("c3", "c1")

    def test_no_reciprocal_edges_no_loops(self, make_edge, companies):
        edges = [make_edge("c1", "c2"), make_edge("c2", "c3"), make_edge("c3", "c4")]
        assert detect_loops(edges, companies) == []

    def test_sorted_by_score_then_id(self, make_edge, companies):
        edges = [
            make_edge("c3", "c4", amount=1.0),
            make_edge("c4", "c3", amount=1.0),
            make_edge("c1", "c2", amount=1.0),
            make_edge("c2", "c1", amount=1.0),
            make_edge("c5", "c6", flow_type=FlowType.MONEY, amount=1.0),
            make_edge("c6", "c5", flow_type=FlowType.SERVICE, amount=1.0),
        ]
        loops = detect_loops(edges, companies)

        assert [l.id for l in loops] == ["5-epsilon--6-zeta", "1-alpha--2-beta", "3-gamma--4-delta"]

    def test_scores_bounded_and_pairs_unique(self, make_edge, companies):
        rng = np.random.default_rng(2024)
        ids = list(companies)
        flows = list(FlowType)

        for _ in range(50):
            edges = []
            for _ in range(int(rng.integers(1, 25))):
                a, b = rng.choice(ids, size=2, replace=False)
                amount = None if rng.random() < 0.3 else float(10 ** rng.uniform(0, 12))
                edges.append(make_edge(
                    str(a), str(b),
                    flow_type=flows[int(rng.integers(len(flows)))],
                    amount=amount,
                    confidence=float(rng.uniform(1, 5)),
                ))
            loops = detect_loops(edges, companies)

            keys = [frozenset(l.company_ids) for l in loops]
            assert len(keys) == len(set(keys))
            for loop in loops:
                assert 0.0 <= loop.loop_score <= 1.0
