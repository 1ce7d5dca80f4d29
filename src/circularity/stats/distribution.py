"""
Null distribution summaries and significance testing.

Two p-values are computed for every observed metric:
- Normal approximation: p = 2 * (1 - Phi(|z|)), z = (observed - mean) / std
- Empirical: share of null trials at least as extreme, doubled for two tails

The empirical value is preferred when the null distribution has no variance
or its mean is a low count, where the normal approximation is poor.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import numpy as np
from scipy.stats import norm

DEFAULT_ALPHA = 0.05
DEFAULT_LOW_COUNT_THRESHOLD = 5.0


@dataclass
class DistributionStats:
    """Summary of a null distribution."""

    iterations: int = 0
    mean: float = 0.0
    std: float = 0.0
    min: float = 0.0
    max: float = 0.0
    p5: float = 0.0
    p50: float = 0.0
    p95: float = 0.0
    values: list[int] = field(default_factory=list)

    def to_dict(self, include_values: bool = False) -> dict[str, Any]:
        result = {
            "iterations": self.iterations,
            "mean": self.mean,
            "std": self.std,
            "min": self.min,
            "max": self.max,
            "p5": self.p5,
            "p50": self.p50,
            "p95": self.p95,
        }
        if include_values:
            result["values"] = list(self.values)
        return result


@dataclass
class SignificanceMetrics:
    """Observed value tested against a null distribution."""

    observed: float
    z_score: Optional[float]  # None when the null has zero variance
    z_defined: bool
    normal_p_value: Optional[float]
    empirical_p_value: float
    p_value: float  # preferred of the two
    p_value_method: str  # "normal", "empirical" or "none"
    percentile: float  # share of null trials <= observed, in percent
    is_significant: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "observed": self.observed,
            "z_score": self.z_score,
            "z_defined": self.z_defined,
            "normal_p_value": self.normal_p_value,
            "empirical_p_value": self.empirical_p_value,
            "p_value": self.p_value,
            "p_value_method": self.p_value_method,
            "percentile": self.percentile,
            "is_significant": self.is_significant,
        }


def compute_distribution_stats(values: Sequence[float]) -> DistributionStats:
    """Mean, population std, range and percentiles of trial values."""
    if len(values) == 0:
        return DistributionStats()

    arr = np.asarray(values, dtype=float)
    return DistributionStats(
        iterations=int(arr.size),
        mean=float(arr.mean()),
        std=float(arr.std()),
        min=float(arr.min()),
        max=float(arr.max()),
        p5=float(np.percentile(arr, 5, method="lower")),
        p50=float(np.percentile(arr, 50, method="lower")),
        p95=float(np.percentile(arr, 95, method="lower")),
        values=[int(v) for v in arr],
    )


def normal_two_tailed_p(z: float) -> float:
    """Two-tailed p-value under the standard normal."""
    return float(min(1.0, 2 * norm.sf(abs(z))))


def empirical_two_tailed_p(observed: float, values: Sequence[float]) -> float:
    """Doubled share of trials at least as extreme as observed, clamped to 1."""
    if len(values) == 0:
        return 1.0
    arr = np.asarray(values, dtype=float)
    upper = float(np.count_nonzero(arr >= observed)) / arr.size
    lower = float(np.count_nonzero(arr <= observed)) / arr.size
    return min(1.0, 2 * min(upper, lower))


def compute_significance(
    observed: float,
    distribution: DistributionStats,
    alpha: float = DEFAULT_ALPHA,
    low_count_threshold: float = DEFAULT_LOW_COUNT_THRESHOLD,
) -> SignificanceMetrics:
    """
    Test an observed value against a null distribution.

    Never divides by zero: a zero-variance null leaves z undefined and
    falls back to the empirical p-value.
    """
    values = distribution.values
    if distribution.iterations == 0:
        return SignificanceMetrics(
            observed=observed,
            z_score=None,
            z_defined=False,
            normal_p_value=None,
            empirical_p_value=1.0,
            p_value=1.0,
            p_value_method="none",
            percentile=0.0,
            is_significant=False,
        )

    z_score = None
    normal_p = None
    if distribution.std > 0:
        z_score = (observed - distribution.mean) / distribution.std
        normal_p = normal_two_tailed_p(z_score)

    empirical_p = empirical_two_tailed_p(observed, values)

    if normal_p is None or distribution.mean < low_count_threshold:
        p_value, method = empirical_p, "empirical"
    else:
        p_value, method = normal_p, "normal"

    arr = np.asarray(values, dtype=float)
    percentile = float(np.count_nonzero(arr <= observed)) / arr.size * 100

    return SignificanceMetrics(
        observed=observed,
        z_score=z_score,
        z_defined=z_score is not None,
        normal_p_value=normal_p,
        empirical_p_value=empirical_p,
        p_value=p_value,
        p_value_method=method,
        percentile=percentile,
        is_significant=p_value < alpha,
    )
