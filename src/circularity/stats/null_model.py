"""
Null model comparison for statistical significance testing.

Uses the configuration model (degree-preserving randomization) to build null
distributions of loop and cycle counts, so observed circularity can be
compared against what random wiring with the same degrees would produce.

Algorithm per trial:
1. outStubs = source of every edge, inStubs = target of every edge
2. Uniformly permute a private copy of inStubs
3. Pair outStubs[i] with the permuted inStubs[i]
4. Drop self-pairs and collapse duplicate (from, to) pairs
5. Count loops and cycles with the same detection cores as the real graph

Trials run in batches, each with an independent child seed, optionally on a
process pool. A time budget stops every batch before its next trial. Batch
results are combined by concatenation, so a given seed produces the same
distributions for any worker count.
"""

import logging
import multiprocessing
import os
import time
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

import numpy as np

from circularity.graph.models import Edge
from circularity.patterns.cycles import (
    MAX_CYCLE_LENGTH,
    MIN_CYCLE_LENGTH,
    Cycle,
    check_max_length,
    count_cycles_by_length,
)
from circularity.patterns.loops import Loop, find_reciprocal_pairs
from circularity.schemas import Company
from circularity.stats.distribution import (
    DEFAULT_ALPHA,
    DEFAULT_LOW_COUNT_THRESHOLD,
    DistributionStats,
    SignificanceMetrics,
    compute_distribution_stats,
    compute_significance,
)

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 500
DEFAULT_BATCH_SIZE = 50
MIN_RANDOMIZABLE_EDGES = 3
MIN_RANDOMIZABLE_NODES = 3

LOOP_COUNT = "loop_count"
CYCLE_COUNT = "cycle_count"


def cycle_length_metric(n: int) -> str:
    return f"cycle_{n}_count"


def count_metrics(max_cycle_length: int) -> list[str]:
    return [LOOP_COUNT, CYCLE_COUNT] + [
        cycle_length_metric(n) for n in range(MIN_CYCLE_LENGTH, max_cycle_length + 1)
    ]


@dataclass
class NullModelConfig:
    """Settings a null model run was computed with."""

    iterations: int = DEFAULT_ITERATIONS
    algorithm: str = "configuration_model"
    max_cycle_length: int = MAX_CYCLE_LENGTH
    batch_size: int = DEFAULT_BATCH_SIZE
    workers: int = 1
    time_budget_seconds: Optional[float] = None
    alpha: float = DEFAULT_ALPHA
    low_count_threshold: float = DEFAULT_LOW_COUNT_THRESHOLD

    def to_dict(self) -> dict[str, Any]:
        return {
            "iterations": self.iterations,
            "algorithm": self.algorithm,
            "max_cycle_length": self.max_cycle_length,
            "batch_size": self.batch_size,
            "workers": self.workers,
            "time_budget_seconds": self.time_budget_seconds,
            "alpha": self.alpha,
            "low_count_threshold": self.low_count_threshold,
        }


@dataclass
class HubSignificance:
    """A company's observed loop participation against its null distribution."""

    company_id: str
    company_slug: str
    company_name: str
    observed_loop_count: int
    null_loop_count: DistributionStats
    significance: SignificanceMetrics

    def to_dict(self) -> dict[str, Any]:
        return {
            "company_id": self.company_id,
            "company_slug": self.company_slug,
            "company_name": self.company_name,
            "observed_loop_count": self.observed_loop_count,
            "null_loop_count": self.null_loop_count.to_dict(),
            "significance": self.significance.to_dict(),
        }


@dataclass
class NullModelComparison:
    """Observed loop/cycle counts compared with the configuration-model null."""

    config: NullModelConfig
    node_count: int
    edge_count: int
    compute_duration_ms: int
    iterations_requested: int
    iterations_completed: int

    observed: dict[str, float] = field(default_factory=dict)
    distributions: dict[str, DistributionStats] = field(default_factory=dict)
    significance: dict[str, SignificanceMetrics] = field(default_factory=dict)
    hubs: list[HubSignificance] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def loop_significance(self) -> SignificanceMetrics:
        return self.significance[LOOP_COUNT]

    @property
    def cycle_significance(self) -> SignificanceMetrics:
        return self.significance[CYCLE_COUNT]

    @property
    def truncated(self) -> bool:
        return self.iterations_completed < self.iterations_requested

    def to_dict(self, include_values: bool = False) -> dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "network_stats": {
                "node_count": self.node_count,
                "edge_count": self.edge_count,
                "compute_duration_ms": self.compute_duration_ms,
            },
            "iterations_requested": self.iterations_requested,
            "iterations_completed": self.iterations_completed,
            "observed": dict(self.observed),
            "null": {k: v.to_dict(include_values) for k, v in self.distributions.items()},
            "significance": {k: v.to_dict() for k, v in self.significance.items()},
            "hubs": [h.to_dict() for h in self.hubs],
            "warnings": list(self.warnings),
        }


def randomize_edges(
    out_stubs: Sequence[str],
    in_stubs: Sequence[str],
    rng: np.random.Generator,
) -> list[tuple[str, str]]:
    """
    Configuration-model rewiring by stub matching.

    The in-stubs are permuted on a private copy (numpy's permutation is a
    Fisher-Yates shuffle); self-pairs are dropped and duplicate pairs
    collapse, so the result is a simple directed graph.
    """
    order = rng.permutation(len(in_stubs))
    pairs: dict[tuple[str, str], None] = {}
    for i, j in enumerate(order):
        from_id = out_stubs[i]
        to_id = in_stubs[j]
        if from_id == to_id:
            continue
        pairs[(from_id, to_id)] = None
    return list(pairs)


def loop_participation(loop_pairs: list[tuple[str, str]]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for a, b in loop_pairs:
        counts[a] = counts.get(a, 0) + 1
        counts[b] = counts.get(b, 0) + 1
    return counts


def _run_trial_batch(
    out_stubs: list[str],
    in_stubs: list[str],
    node_ids: list[str],
    n_trials: int,
    seed: np.random.SeedSequence,
    max_cycle_length: int,
    deadline: Optional[float] = None,
) -> dict[str, np.ndarray]:
    """
    Run a batch of trials; module level so worker processes can import it.

    deadline is a wall-clock timestamp (time.time()). Once it passes, the batch
    stops before its next trial and returns only the completed trials.
    """
    rng = np.random.default_rng(seed)
    metrics = count_metrics(max_cycle_length)
    counts = {metric: np.zeros(n_trials, dtype=np.int64) for metric in metrics}
    node_index = {node_id: i for i, node_id in enumerate(node_ids)}
    hub_counts = np.zeros((n_trials, len(node_ids)), dtype=np.int64)

    completed = n_trials
    for t in range(n_trials):
        if deadline is not None and time.time() >= deadline:
            completed = t
            break
        pairs = randomize_edges(out_stubs, in_stubs, rng)

        loops = find_reciprocal_pairs(pairs)
        counts[LOOP_COUNT][t] = len(loops)
        for node_id, n in loop_participation(loops).items():
            hub_counts[t, node_index[node_id]] = n

        cycles = count_cycles_by_length(pairs, max_cycle_length)
        counts[CYCLE_COUNT][t] = cycles.total
        for n in range(MIN_CYCLE_LENGTH, max_cycle_length + 1):
            counts[cycle_length_metric(n)][t] = cycles.length(n)

    counts["hub_loop_counts"] = hub_counts
    if completed < n_trials:
        counts = {metric: values[:completed] for metric, values in counts.items()}
    return counts


def _pool_context() -> multiprocessing.context.BaseContext:
    """Start method for worker processes; never fork a threaded caller."""
    if "forkserver" in multiprocessing.get_all_start_methods():
        return multiprocessing.get_context("forkserver")
    return multiprocessing.get_context("spawn")


def _root_seed(
    seed: Optional[int],
    rng: Optional[np.random.Generator],
) -> np.random.SeedSequence:
    if rng is not None:
        return np.random.SeedSequence(rng.integers(0, 2**32, size=4).tolist())
    return np.random.SeedSequence(seed)


class NullModelEngine:
    """
    Runs configuration-model trials and tests observed counts against them.

    Usage:
        engine = NullModelEngine(iterations=500, seed=42)
        comparison = engine.compare(edges)
    """

    def __init__(
        self,
        iterations: int = DEFAULT_ITERATIONS,
        max_cycle_length: int = MAX_CYCLE_LENGTH,
        *,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
        workers: Optional[int] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        time_budget_seconds: Optional[float] = None,
        alpha: float = DEFAULT_ALPHA,
        low_count_threshold: float = DEFAULT_LOW_COUNT_THRESHOLD,
    ):
        if iterations < 1:
            raise ValueError(f"iterations must be at least 1, got {iterations}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        check_max_length(max_cycle_length)

        self.iterations = iterations
        self.max_cycle_length = max_cycle_length
        self.rng = rng
        self.seed = seed
        self.workers = workers if workers is not None else (os.cpu_count() or 1)
        self.batch_size = batch_size
        self.time_budget_seconds = time_budget_seconds
        self.alpha = alpha
        self.low_count_threshold = low_count_threshold

    @property
    def config(self) -> NullModelConfig:
        return NullModelConfig(
            iterations=self.iterations,
            max_cycle_length=self.max_cycle_length,
            batch_size=self.batch_size,
            workers=self.workers,
            time_budget_seconds=self.time_budget_seconds,
            alpha=self.alpha,
            low_count_threshold=self.low_count_threshold,
        )

    def compare(
        self,
        edges: list[Edge],
        companies: Optional[Mapping[str, Company]] = None,
        loops: Optional[list[Loop]] = None,
        cycles: Optional[list[Cycle]] = None,
    ) -> NullModelComparison:
        """
        Compare an edge set against its configuration-model null.

        Args:
            edges: Edges taking part in detection
            companies: Optional company lookup for hub names and slugs
            loops: Optional scored loops, for observed score summaries
            cycles: Optional scored cycles, for observed score summaries

        Returns:
            NullModelComparison with distributions, significance and warnings
        """
        started = time.monotonic()
        companies = companies or {}

        pairs = [e.pair for e in edges if e.from_id != e.to_id]
        out_stubs = [a for a, _ in pairs]
        in_stubs = [b for _, b in pairs]
        node_ids = list(dict.fromkeys(node for pair in pairs for node in pair))

        observed_loops = find_reciprocal_pairs(pairs)
        observed_cycles = count_cycles_by_length(pairs, self.max_cycle_length)
        observed: dict[str, float] = {
            LOOP_COUNT: len(observed_loops),
            CYCLE_COUNT: observed_cycles.total,
        }
        for n in range(MIN_CYCLE_LENGTH, self.max_cycle_length + 1):
            observed[cycle_length_metric(n)] = observed_cycles.length(n)
        if loops is not None:
            observed["avg_loop_score"] = (
                sum(l.loop_score for l in loops) / len(loops) if loops else 0.0
            )
            observed["total_circulation"] = sum(l.total_circulation for l in loops)
        if cycles is not None:
            observed["avg_cycle_score"] = (
                sum(c.cycle_score for c in cycles) / len(cycles) if cycles else 0.0
            )

        warnings: list[str] = []
        if len(pairs) < MIN_RANDOMIZABLE_EDGES or len(node_ids) < MIN_RANDOMIZABLE_NODES:
            warnings.append(
                f"Too few edges to randomize meaningfully "
                f"({len(pairs)} edges, {len(node_ids)} nodes)"
            )

        logger.info(
            f"Running {self.iterations} null model iterations over "
            f"{len(pairs)} edges with {self.workers} worker(s)"
        )
        batches = self._run_batches(out_stubs, in_stubs, node_ids)
        completed = sum(len(b[LOOP_COUNT]) for b in batches)

        if completed < self.iterations:
            warnings.append(
                f"Time budget exhausted after {completed} of {self.iterations} iterations"
            )

        distributions: dict[str, DistributionStats] = {}
        significance: dict[str, SignificanceMetrics] = {}
        for metric in count_metrics(self.max_cycle_length):
            values = np.concatenate([b[metric] for b in batches]) if batches else np.array([])
            dist = compute_distribution_stats(values)
            distributions[metric] = dist
            significance[metric] = compute_significance(
                observed[metric], dist, self.alpha, self.low_count_threshold
            )
            if dist.iterations > 0 and dist.std == 0:
                warnings.append(
                    f"Null distribution for {metric} has zero variance; z-score undefined"
                )

        hubs = self._hub_significance(batches, node_ids, observed_loops, companies)

        for message in warnings:
            logger.warning(message)

        loop_sig = significance[LOOP_COUNT]
        logger.info(
            f"Null model complete: {completed} iterations, loops observed "
            f"{observed[LOOP_COUNT]:.0f} vs null mean {distributions[LOOP_COUNT].mean:.2f} "
            f"(p={loop_sig.p_value:.4f})"
        )

        return NullModelComparison(
            config=self.config,
            node_count=len(node_ids),
            edge_count=len(pairs),
            compute_duration_ms=int((time.monotonic() - started) * 1000),
            iterations_requested=self.iterations,
            iterations_completed=completed,
            observed=observed,
            distributions=distributions,
            significance=significance,
            hubs=hubs,
            warnings=warnings,
        )

    def _batch_sizes(self) -> list[int]:
        full, rest = divmod(self.iterations, self.batch_size)
        sizes = [self.batch_size] * full
        if rest:
            sizes.append(rest)
        return sizes

    def _run_batches(
        self,
        out_stubs: list[str],
        in_stubs: list[str],
        node_ids: list[str],
    ) -> list[dict[str, np.ndarray]]:
        sizes = self._batch_sizes()
        seeds = _root_seed(self.seed, self.rng).spawn(len(sizes))
        # Wall clock, so worker processes compare against the same deadline
        deadline = (
            time.time() + self.time_budget_seconds
            if self.time_budget_seconds is not None
            else None
        )

        if self.workers <= 1 or len(sizes) <= 1:
            results = []
            for size, seed in zip(sizes, seeds):
                if deadline is not None and time.time() >= deadline:
                    break
                batch = _run_trial_batch(
                    out_stubs, in_stubs, node_ids, size, seed, self.max_cycle_length, deadline
                )
                if len(batch[LOOP_COUNT]):
                    results.append(batch)
                if len(batch[LOOP_COUNT]) < size:
                    break
            return results

        done_results: dict[int, dict[str, np.ndarray]] = {}

        def collect(finished) -> None:
            for future in finished:
                if not future.cancelled():
                    done_results[futures[future]] = future.result()

        # Leaving the block joins the workers; running batches stop at the deadline
        with ProcessPoolExecutor(
            max_workers=min(self.workers, len(sizes)),
            mp_context=_pool_context(),
        ) as executor:
            futures = {
                executor.submit(
                    _run_trial_batch,
                    out_stubs, in_stubs, node_ids, size, seed, self.max_cycle_length, deadline,
                ): index
                for index, (size, seed) in enumerate(zip(sizes, seeds))
            }
            pending = set(futures)
            while pending:
                timeout = None
                if deadline is not None:
                    timeout = max(0.0, deadline - time.time())
                done, pending = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)
                collect(done)
                if not done:
                    for future in pending:
                        future.cancel()
                    done, pending = wait(pending)
                    collect(done)

        return [
            done_results[i] for i in sorted(done_results) if len(done_results[i][LOOP_COUNT])
        ]

    def _hub_significance(
        self,
        batches: list[dict[str, np.ndarray]],
        node_ids: list[str],
        observed_loops: list[tuple[str, str]],
        companies: Mapping[str, Company],
    ) -> list[HubSignificance]:
        observed = loop_participation(observed_loops)
        if not observed or not batches:
            return []

        hub_counts = np.concatenate([b["hub_loop_counts"] for b in batches], axis=0)
        results = []
        for index, node_id in enumerate(node_ids):
            count = observed.get(node_id, 0)
            if count == 0:
                continue
            dist = compute_distribution_stats(hub_counts[:, index])
            company = companies.get(node_id)
            results.append(HubSignificance(
                company_id=node_id,
                company_slug=company.slug if company else node_id,
                company_name=company.name if company else node_id,
                observed_loop_count=count,
                null_loop_count=dist,
                significance=compute_significance(
                    count, dist, self.alpha, self.low_count_threshold
                ),
            ))

        results.sort(key=lambda h: (-h.observed_loop_count, h.company_slug))
        return results


def compare_to_null_model(
    edges: list[Edge],
    iterations: int = DEFAULT_ITERATIONS,
    *,
    max_cycle_length: int = MAX_CYCLE_LENGTH,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
    workers: Optional[int] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    time_budget_seconds: Optional[float] = None,
    alpha: float = DEFAULT_ALPHA,
    low_count_threshold: float = DEFAULT_LOW_COUNT_THRESHOLD,
    companies: Optional[Mapping[str, Company]] = None,
    loops: Optional[list[Loop]] = None,
    cycles: Optional[list[Cycle]] = None,
) -> NullModelComparison:
    """Convenience wrapper around NullModelEngine."""
    engine = NullModelEngine(
        iterations,
        max_cycle_length,
        rng=rng,
        seed=seed,
        workers=workers,
        batch_size=batch_size,
        time_budget_seconds=time_budget_seconds,
        alpha=alpha,
        low_count_threshold=low_count_threshold,
    )
    return engine.compare(edges, companies=companies, loops=loops, cycles=cycles)
