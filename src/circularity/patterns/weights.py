"""
Scoring weights for loop and cycle scores.

Weights are non-negative and sum to one, so every composite score stays in
[0, 1] as long as its components do.
"""

import math
from dataclasses import dataclass, fields
from typing import Any

WEIGHT_TOLERANCE = 1e-6


def _validate(weights: Any) -> None:
    values = [getattr(weights, f.name) for f in fields(weights)]
    if any(v < 0 for v in values):
        raise ValueError(f"{type(weights).__name__} must be non-negative: {values}")
    if not math.isclose(sum(values), 1.0, abs_tol=WEIGHT_TOLERANCE):
        raise ValueError(f"{type(weights).__name__} must sum to 1, got {sum(values)}")


@dataclass(frozen=True)
class LoopWeights:
    """Loop score weights: flow diversity, balance, confidence."""

    diversity: float = 0.35
    balance: float = 0.35
    confidence: float = 0.30

    def __post_init__(self):
        _validate(self)

    def to_dict(self) -> dict[str, float]:
        return {"diversity": self.diversity, "balance": self.balance, "confidence": self.confidence}


@dataclass(frozen=True)
class CycleWeights:
    """Cycle score weights: flow, balance, magnitude, confidence, length."""

    flow: float = 0.30
    balance: float = 0.25
    magnitude: float = 0.10
    confidence: float = 0.20
    length: float = 0.15

    def __post_init__(self):
        _validate(self)

    def to_dict(self) -> dict[str, float]:
        return {
            "flow": self.flow,
            "balance": self.balance,
            "magnitude": self.magnitude,
            "confidence": self.confidence,
            "length": self.length,
        }


@dataclass(frozen=True)
class WeightingScheme:
    """A named pair of loop and cycle weights."""

    name: str
    loop: LoopWeights = LoopWeights()
    cycle: CycleWeights = CycleWeights()

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "loop": self.loop.to_dict(), "cycle": self.cycle.to_dict()}


BASELINE_SCHEME = WeightingScheme("baseline")

DEFAULT_SCHEMES = [
    BASELINE_SCHEME,
    WeightingScheme(
        "equal_weights",
        LoopWeights(1 / 3, 1 / 3, 1 / 3),
        CycleWeights(0.2, 0.2, 0.2, 0.2, 0.2),
    ),
    WeightingScheme(
        "diversity_heavy",
        LoopWeights(0.6, 0.2, 0.2),
        CycleWeights(0.5, 0.15, 0.1, 0.15, 0.1),
    ),
    WeightingScheme(
        "balance_heavy",
        LoopWeights(0.2, 0.6, 0.2),
        CycleWeights(0.15, 0.5, 0.1, 0.15, 0.1),
    ),
    WeightingScheme(
        "confidence_heavy",
        LoopWeights(0.2, 0.2, 0.6),
        CycleWeights(0.15, 0.15, 0.1, 0.5, 0.1),
    ),
]
