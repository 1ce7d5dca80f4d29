"""
Circular flow pattern detection.

Includes:
- Two-party loop detection and scoring
- Multi-party (3-5 company) cycle detection and scoring
- Company-level hub score aggregation
- Scoring weights and alternative weighting schemes
"""

from circularity.patterns.weights import (
    BASELINE_SCHEME,
    DEFAULT_SCHEMES,
    CycleWeights,
    LoopWeights,
    WeightingScheme,
)
from circularity.patterns.loops import (
    Loop,
    detect_loops,
    find_reciprocal_pairs,
    score_loop,
)
from circularity.patterns.cycles import (
    Cycle,
    CycleCounts,
    canonical_rotation,
    count_cycles_by_length,
    detect_cycles,
    enumerate_cycles,
    score_cycle,
)
from circularity.patterns.hubs import (
    HubScore,
    compute_hub_scores,
)

__all__ = [
    # Weights
    "BASELINE_SCHEME",
    "DEFAULT_SCHEMES",
    "CycleWeights",
    "LoopWeights",
    "WeightingScheme",
    # Loops
    "Loop",
    "detect_loops",
    "find_reciprocal_pairs",
    "score_loop",
    # Cycles
    "Cycle",
    "CycleCounts",
    "canonical_rotation",
    "count_cycles_by_length",
    "detect_cycles",
    "enumerate_cycles",
    "score_cycle",
    # Hubs
    "HubScore",
    "compute_hub_scores",
]
