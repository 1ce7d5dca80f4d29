"""
Statistical validation of detected circularity.

Includes:
- Null distribution summaries and significance tests
- Configuration-model null model comparison
- Weighting-scheme sensitivity analysis
"""

from circularity.stats.distribution import (
    DistributionStats,
    SignificanceMetrics,
    compute_distribution_stats,
    compute_significance,
)
from circularity.stats.null_model import (
    HubSignificance,
    NullModelComparison,
    NullModelConfig,
    NullModelEngine,
    compare_to_null_model,
    randomize_edges,
)
from circularity.stats.sensitivity import (
    RankingStability,
    SchemeResult,
    SensitivityAnalysis,
    rank_correlation,
    run_sensitivity_analysis,
)

__all__ = [
    # Distribution
    "DistributionStats",
    "SignificanceMetrics",
    "compute_distribution_stats",
    "compute_significance",
    # Null model
    "HubSignificance",
    "NullModelComparison",
    "NullModelConfig",
    "NullModelEngine",
    "compare_to_null_model",
    "randomize_edges",
    # Sensitivity
    "RankingStability",
    "SchemeResult",
    "SensitivityAnalysis",
    "rank_correlation",
    "run_sensitivity_analysis",
]
