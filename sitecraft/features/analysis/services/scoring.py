"""
Scoring

Per-module scores come from a severity-weighted deduction; the analysis score
is the mean of the completed modules' scores.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Mapping, Optional, Protocol, Sequence

from sitecraft.features.analysis.models.finding import FindingSeverity

SEVERITY_WEIGHTS: Dict[FindingSeverity, int] = {
    FindingSeverity.critical: 25,
    FindingSeverity.serious: 15,
    FindingSeverity.moderate: 8,
    FindingSeverity.minor: 3,
}


class FindingScorer(Protocol):
    def score(self, severities: Sequence[FindingSeverity]) -> int: ...


class SeverityWeightedScorer:
    """100 minus the summed severity weights, floored at 0."""

    def __init__(self, weights: Optional[Mapping[FindingSeverity, int]] = None):
        self.weights = dict(weights or SEVERITY_WEIGHTS)

    def score(self, severities: Sequence[FindingSeverity]) -> int:
        penalty = sum(self.weights.get(severity, 0) for severity in severities)
        return max(0, min(100, 100 - penalty))


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def combine_module_scores(scores: Iterable[Optional[int]]) -> Optional[int]:
    """Mean of the given module scores, rounded half up. None when there is nothing to average."""
    values = [score for score in scores if score is not None]
    if not values:
        return None
    return round_half_up(Decimal(sum(values)) / Decimal(len(values)))
