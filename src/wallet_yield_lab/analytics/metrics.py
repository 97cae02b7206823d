from __future__ import annotations

import math
from collections.abc import Sequence

from ..core.constants import CONFIDENCE_SCORES

DAYS_PER_YEAR = 365.0


def _coerce_float(value: object) -> float:
    """Best-effort conversion to ``float`` returning ``nan`` on failure."""

    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return float("nan")


def round2(value: float) -> float:
    return round(float(value), 2)


def weighted_mean(values: Sequence[object], weights: Sequence[object]) -> float:
    """Compute a weighted mean while skipping ``NaN`` pairs and zero weight sums."""

    vals = list(values)
    wts = list(weights)
    if not vals or not wts or len(vals) != len(wts):
        return float("nan")

    contributions: list[float] = []
    cleaned_weights: list[float] = []
    for raw_value, raw_weight in zip(vals, wts):
        value = _coerce_float(raw_value)
        weight = _coerce_float(raw_weight)
        if math.isnan(value) or math.isnan(weight):
            continue
        contributions.append(value * weight)
        cleaned_weights.append(weight)

    if not contributions:
        return float("nan")

    weight_sum = math.fsum(cleaned_weights)
    if not math.isfinite(weight_sum) or weight_sum == 0.0:
        return float("nan")

    numerator = math.fsum(contributions)
    if not math.isfinite(numerator):
        return float("nan")

    return numerator / weight_sum


def compound_annualize(period_return: float, days: float) -> float:
    """Annualise a simple period return by compounding to a 365-day basis.

    Both input and output are decimal fractions. A total loss (growth factor
    at or below zero) maps to ``-1.0`` instead of raising on a fractional power.
    Overflow for very short windows saturates to ``inf``.
    """

    growth = 1.0 + float(period_return)
    if growth <= 0.0:
        return -1.0
    try:
        return growth ** (DAYS_PER_YEAR / float(days)) - 1.0
    except OverflowError:
        return float("inf")


def simple_annualize(daily_return: float) -> float:
    """Scale a daily return linearly to a year (no compounding)."""

    return float(daily_return) * DAYS_PER_YEAR


def confidence_score(label: str) -> float:
    return CONFIDENCE_SCORES.get(label, 0.0)


def confidence_label(score: float) -> str:
    """Map an averaged confidence score back to a label."""

    if math.isnan(score):
        return "low"
    if score >= 2.5:
        return "high"
    if score >= 1.5:
        return "medium"
    return "low"


def weighted_confidence(labels: Sequence[str], weights: Sequence[float] | None = None) -> str:
    """Value-weighted average confidence; equal weights when all weights vanish."""

    if not labels:
        return "low"
    scores = [confidence_score(label) for label in labels]
    if weights is not None:
        score = weighted_mean(scores, list(weights))
        if not math.isnan(score):
            return confidence_label(score)
    return confidence_label(weighted_mean(scores, [1.0] * len(scores)))


__all__ = [
    "DAYS_PER_YEAR",
    "compound_annualize",
    "confidence_label",
    "confidence_score",
    "round2",
    "simple_annualize",
    "weighted_confidence",
    "weighted_mean",
]
