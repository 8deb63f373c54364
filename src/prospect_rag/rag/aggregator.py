"""Outcome aggregation — neighbor outcome labels → one bounded score.

Each neighbor contributes the weight of its outcome label and the score is
the arithmetic mean over *all* neighbors, so Active (or unknown) neighbors
dilute the signal without pushing it either way:

    score = sum(weight[label] for n in neighbors) / len(neighbors)

With every weight in [-1.0, 1.0] the score is bounded to the same range.
An empty neighbor set scores exactly 0.0.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from prospect_rag.models import OutcomeCounts, OutcomeLabel

if TYPE_CHECKING:
    from collections.abc import Sequence

    from prospect_rag.config import ScoringConfig
    from prospect_rag.models import Neighbor


@dataclass(frozen=True)
class OutcomeWeights:
    """Per-label contribution of one neighbor to the prospect score."""

    acquired: float = 0.8
    ipo: float = 1.0
    inactive: float = -1.0
    active: float = 0.0

    @classmethod
    def from_config(cls, config: ScoringConfig) -> OutcomeWeights:
        return cls(
            acquired=config.acquired_weight,
            ipo=config.ipo_weight,
            inactive=config.inactive_weight,
            active=config.active_weight,
        )

    def weight_for(self, label: OutcomeLabel) -> float:
        if label is OutcomeLabel.ACQUIRED:
            return self.acquired
        if label is OutcomeLabel.IPO:
            return self.ipo
        if label is OutcomeLabel.INACTIVE:
            return self.inactive
        return self.active


DEFAULT_WEIGHTS = OutcomeWeights()


@dataclass(frozen=True)
class Aggregate:
    score: float
    counts: OutcomeCounts


def aggregate(
    neighbors: Sequence[Neighbor],
    weights: OutcomeWeights = DEFAULT_WEIGHTS,
) -> Aggregate:
    """Fold neighbor outcomes into a mean score plus outcome counts."""
    counts = OutcomeCounts()
    if not neighbors:
        return Aggregate(score=0.0, counts=counts)

    total = 0.0
    for neighbor in neighbors:
        total += weights.weight_for(neighbor.status)
        if neighbor.status is OutcomeLabel.ACQUIRED:
            counts.acquired += 1
        elif neighbor.status is OutcomeLabel.IPO:
            counts.ipo += 1
        elif neighbor.status is OutcomeLabel.INACTIVE:
            counts.inactive += 1

    score = total / len(neighbors)
    if not math.isfinite(score):
        score = 0.0
    return Aggregate(score=score, counts=counts)
