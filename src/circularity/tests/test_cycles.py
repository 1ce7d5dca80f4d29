"""
Tests for multi-party cycle detection and scoring.
"""

import math

import networkx as nx
import numpy as np
import pytest

from circularity.graph import build_graph
from circularity.patterns import (
    CycleWeights,
    canonical_rotation,
    count_cycles_by_length,
    detect_cycles,
    enumerate_cycles,
)
from circularity.patterns.cycles import (
    balance_component,
    build_adjacency,
    flow_component,
    length_component,
    magnitude_component,
)
from circularity.schemas import FlowType


def random_pairs(rng: np.random.Generator, n_nodes: int, n_edges: int) -> list[tuple[str, str]]:
    nodes = [f"v{i}" for i in range(n_nodes)]
    pairs = []
    for _ in range(n_edges):
        a, b = rng.choice(nodes, size=2, replace=False)
        pairs.append((str(a), str(b)))
    return pairs


class TestEnumerateCycles:
    """Tests for the explicit-stack cycle enumeration."""

    def test_triangle(self):
        adjacency = build_adjacency([("a", "b"), ("b", "c"), ("c", "a")])
        assert list(enumerate_cycles(adjacency)) == [("a", "b", "c")]

    def test_two_cycles_not_reported(self):
        adjacency = build_adjacency([("a", "b"), ("b", "a")])
        assert list(enumerate_cycles(adjacency)) == []

    def test_respects_max_length(self):
        ring = [(f"n{i}", f"n{(i + 1) % 6}") for i in range(6)]
        assert list(enumerate_cycles(build_adjacency(ring), max_length=5)) == []

        ring = [(f"n{i}", f"n{(i + 1) % 5}") for i in range(5)]
        assert len(list(enumerate_cycles(build_adjacency(ring), max_length=5))) == 1
        assert list(enumerate_cycles(build_adjacency(ring), max_length=4)) == []

    def test_reverse_traversal_needs_reverse_edges(self):
        pairs = [("a", "b"), ("b", "c"), ("c", "a")]
        assert count_cycles_by_length(pairs).total == 1

        both_ways = pairs + [(b, a) for a, b in pairs]
        counts = count_cycles_by_length(both_ways)
        assert counts.total == 2
        assert counts.length(3) == 2

    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    def test_matches_networkx(self, seed):
        rng = np.random.default_rng(seed)
        pairs = random_pairs(rng, n_nodes=8, n_edges=20)

        graph = nx.DiGraph()
        graph.add_edges_from(pairs)
        expected = {
            canonical_rotation(c)
            for c in nx.simple_cycles(graph, length_bound=5)
            if len(c) >= 3
        }
        found = {canonical_rotation(c) for c in enumerate_cycles(build_adjacency(pairs), 5)}

        assert found == expected

    def test_counts_by_length(self):
        pairs = [
            ("a", "b"), ("b", "c"), ("c", "a"),
            ("c", "d"), ("d", "e"), ("e", "a"),
        ]
        counts = count_cycles_by_length(pairs)

        assert counts.total == 2
        assert counts.length(3) == 1
        assert counts.length(5) == 1
        assert counts.length(4) == 0


class TestCanonicalRotation:
    def test_smallest_rotation(self):
        assert canonical_rotation(["c", "a", "b"]) == ("a", "b", "c")

    def test_any_rotation_same_id(self):
        path = ["d", "b", "e", "a", "c"]
        expected = canonical_rotation(path)
        for i in range(len(path)):
            assert canonical_rotation(path[i:] + path[:i]) == expected

    def test_direction_is_kept(self):
        assert canonical_rotation(["a", "c", "b"]) == ("a", "c", "b")


class TestCycleComponents:
    """Tests for cycle score components."""

    def test_flow_component(self, make_edge):
        money = make_edge("a", "b", flow_type=FlowType.MONEY)
        service = make_edge("b", "c", flow_type=FlowType.SERVICE)

        assert flow_component([money, service]) == 1.0
        assert flow_component([money, money]) == 0.7
        assert flow_component([]) == 0.5

    def test_balance_component(self):
        assert balance_component([1e9, 1e9, 1e9]) == 1.0
        assert balance_component([1e9, 1e6]) == pytest.approx(0.0)
        assert balance_component([10.0, 100.0]) == pytest.approx(1 - 1 / 3)
        assert balance_component([1e9, None, None]) == 0.5
        assert balance_component([None, None]) == 0.5

    def test_magnitude_component(self):
        assert magnitude_component(0) == 0.0
        assert magnitude_component(1e6) == pytest.approx(0.0)
        assert magnitude_component(1e12) == 1.0
        assert magnitude_component(1e15) == 1.0
        assert magnitude_component(1e9) == pytest.approx(0.5)

    def test_length_component(self):
        assert length_component(3) == pytest.approx(1 / math.sqrt(2))
        assert length_component(5) == pytest.approx(0.5)


class TestCycleDetection:
    """Tests for detect_cycles over edge sets."""

    def test_end_to_end_scenario(self, company_list, companies, scenario_cycle_deals):
        graph = build_graph(company_list, scenario_cycle_deals)
        cycles = detect_cycles(graph.edges, companies)

        assert len(cycles) == 1
        cycle = cycles[0]
        assert cycle.id == "1-alpha--2-beta--3-gamma"
        assert cycle.length == 3
        assert cycle.flow_score == 1.0
        assert cycle.balance_score == 1.0
        assert cycle.magnitude_score == pytest.approx((math.log10(3e9) - 6) / 6)
        assert cycle.confidence_score == 1.0
        assert cycle.length_score == pytest.approx(1 / math.sqrt(2))
        assert cycle.cycle_score == pytest.approx(0.9140, abs=1e-4)
        assert cycle.total_value == pytest.approx(3e9)
        assert cycle.deal_count == 3

    def test_no_reciprocal_edges_no_loops_or_cycles(self, make_edge, companies):
        from circularity.patterns import detect_loops

        edges = [make_edge("c1", "c2"), make_edge("c2", "c3"), make_edge("c1", "c3")]
        assert detect_loops(edges, companies) == []
        assert detect_cycles(edges, companies) == []

    def test_canonical_start_is_smallest_slug(self, make_edge, companies):
        edges = [
            make_edge("c3", "c1"),
            make_edge("c1", "c2"),
            make_edge("c2", "c3"),
        ]
        cycle = detect_cycles(edges, companies)[0]

        assert cycle.company_ids == ["c1", "c2", "c3"]
        assert [e.pair for e in cycle.edges] == [("c1", "c2"), ("c2", "c3"), ("c3", "c1")]

    def test_parallel_edges_sum_per_hop(self, make_edge, companies):
        edges = [
            make_edge("c1", "c2", flow_type=FlowType.MONEY, amount=5e8),
            make_edge("c1", "c2", flow_type=FlowType.EQUITY, amount=5e8, deal_ids=["shared"]),
            make_edge("c2", "c3", amount=1e9, deal_ids=["shared"]),
            make_edge("c3", "c1", amount=1e9),
        ]
        cycle = detect_cycles(edges, companies)[0]

        assert len(cycle.hops[0]) == 2
        assert cycle.balance_score == 1.0
        assert cycle.total_value == pytest.approx(3e9)
        assert cycle.deal_count == 3

    def test_undetermined_amounts(self, make_edge, companies):
        edges = [
            make_edge("c1", "c2"),
            make_edge("c2", "c3"),
            make_edge("c3", "c1"),
        ]
        cycle = detect_cycles(edges, companies)[0]

        assert cycle.balance_score == 0.5
        assert cycle.magnitude_score == 0.0
        assert cycle.flow_score == 0.7

    def test_max_length_validated(self, make_edge, companies):
        with pytest.raises(ValueError):
            detect_cycles([], companies, max_length=6)
        with pytest.raises(ValueError):
            detect_cycles([], companies, max_length=2)

    def test_rescore(self, company_list, companies, scenario_cycle_deals):
        graph = build_graph(company_list, scenario_cycle_deals)
        cycle = detect_cycles(graph.edges, companies)[0]
        rescored = cycle.rescore(CycleWeights(0.0, 0.0, 0.0, 0.0, 1.0))

        assert rescored.cycle_score == pytest.approx(cycle.length_score)
        assert rescored.id == cycle.id

    def test_random_graphs_bounded_and_unique(self, make_edge, companies):
        rng = np.random.default_rng(99)
        ids = list(companies)
        flows = list(FlowType)

        for _ in range(30):
            edges = []
            for _ in range(int(rng.integers(3, 20))):
                a, b = rng.choice(ids, size=2, replace=False)
                amount = None if rng.random() < 0.3 else float(10 ** rng.uniform(0, 13))
                edges.append(make_edge(
                    str(a), str(b),
                    flow_type=flows[int(rng.integers(len(flows)))],
                    amount=amount,
                    confidence=float(rng.uniform(1, 5)),
                ))
            cycles = detect_cycles(edges, companies)

            assert len({c.id for c in cycles}) == len(cycles)
            for cycle in cycles:
                assert 3 <= cycle.length <= 5
                assert len(set(cycle.company_ids)) == cycle.length
                assert 0.0 <= cycle.cycle_score <= 1.0
                for i in range(cycle.length):
                    slugs = [companies[c].slug for c in cycle.company_ids]
                    rotated = slugs[i:] + slugs[:i]
                    assert "--".join(canonical_rotation(rotated)) == cycle.id

    def test_deterministic(self, company_list, companies, scenario_cycle_deals):
        first = detect_cycles(build_graph(company_list, scenario_cycle_deals).edges, companies)
        second = detect_cycles(build_graph(company_list, scenario_cycle_deals).edges, companies)

        assert [c.to_dict() for c in first] == [c.to_dict() for c in second]
