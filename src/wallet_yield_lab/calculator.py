"""Period return and APY calculation for a single identity.

One state machine covers every identity and lookback period:

- no prior observation (or a non-positive prior value): the *new position*
  branch assumes the position is one day old and annualises its unclaimed
  rewards linearly;
- a prior observation whose value barely moved while rewards accrue: the
  *rewards* branch spreads the rewards over an assumed accrual window;
- otherwise the *value change* branch compounds the observed return over the
  elapsed calendar days.

All figures on :class:`~wallet_yield_lab.core.APYResult` are percentages
rounded to two decimals.
"""

from __future__ import annotations

import logging

from .analytics.metrics import compound_annualize, round2, simple_annualize
from .config import EngineConfig
from .core import APYResult, Observation
from .core.constants import (
    METHOD_NEW_POSITION,
    METHOD_REWARDS,
    METHOD_TOKEN_PRICE,
    METHOD_VALUE_CHANGE,
)

logger = logging.getLogger(__name__)

MIN_ELAPSED_DAYS = 0.1
SECONDS_PER_DAY = 86_400.0


def assess_confidence(apy: float, is_new_position: bool) -> str:
    """Baseline confidence from the magnitude of ``apy`` (percent)."""

    magnitude = abs(apy)
    if is_new_position:
        if magnitude > 1000:
            return "very_low"
        if magnitude > 100:
            return "low"
        return "medium"
    if magnitude > 10000:
        return "very_low"
    if magnitude > 1000:
        return "low"
    if magnitude > 100:
        return "medium"
    return "high"


def elapsed_days(current: Observation, prior: Observation) -> float:
    seconds = (current.timestamp - prior.timestamp).total_seconds()
    return max(MIN_ELAPSED_DAYS, seconds / SECONDS_PER_DAY)


class ReturnCalculator:
    """Convert value observations into an :class:`APYResult`."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()

    def calculate(
        self,
        current: Observation,
        prior: Observation | None,
        *,
        method: str = METHOD_VALUE_CHANGE,
    ) -> APYResult | None:
        """Pick the applicable branch; ``None`` when the current value is not positive."""

        if current.value <= 0:
            return None
        if prior is None:
            return self.new_position(current)
        if prior.value <= 0:
            logger.debug("Prior value %.2f is not positive; treating as new position", prior.value)
            return self.new_position(current, note="Prior value was zero; treated as a new position")
        threshold = current.value * self.config.stable_value_threshold
        if current.rewards > 0 and abs(current.value - prior.value) < threshold:
            return self.rewards_based(current, prior)
        return self.value_change(current, prior, method=method)

    def new_position(self, current: Observation, *, note: str | None = None) -> APYResult:
        warnings = [note] if note else []
        if current.rewards <= 0:
            warnings.append(
                "New position without unclaimed rewards; assumed 1 day old, no yield observable yet"
            )
            return APYResult(
                apy=0.0,
                period_return=0.0,
                days=1.0,
                is_new_position=True,
                confidence="low",
                calculation_method=METHOD_NEW_POSITION,
                warnings=tuple(warnings),
                current_value=current.value,
                unclaimed_rewards=current.rewards,
            )

        daily_return = current.rewards / current.value
        apy = simple_annualize(daily_return) * 100.0
        warnings.append("Assumed 1 day old based on unclaimed rewards; actual age unknown")
        return APYResult(
            apy=round2(apy),
            period_return=round2(daily_return * 100.0),
            days=1.0,
            is_new_position=True,
            confidence=assess_confidence(apy, True),
            calculation_method=METHOD_NEW_POSITION,
            warnings=tuple(warnings),
            current_value=current.value,
            unclaimed_rewards=current.rewards,
        )

    def assumed_accrual_days(self, rewards: float, value: float) -> float:
        """Accrual window scaled by reward size relative to the position."""

        cfg = self.config
        scaled = rewards / (value * 0.001)
        return min(cfg.rewards_max_days, max(cfg.rewards_min_days, scaled))

    def rewards_based(self, current: Observation, prior: Observation) -> APYResult:
        assumed = self.assumed_accrual_days(current.rewards, current.value)
        daily_return = current.rewards / (current.value * assumed)
        apy = simple_annualize(daily_return) * 100.0
        warnings = [
            f"Value stable within {self.config.stable_value_threshold:.0%}; "
            f"based on unclaimed rewards (assumed {assumed:.1f} days accumulation)"
        ]
        if apy > self.config.rewards_apy_cap:
            warnings.append(
                f"Rewards-based APY of {apy:.2f}% capped at {self.config.rewards_apy_cap:.0f}%"
            )
            apy = self.config.rewards_apy_cap
        return APYResult(
            apy=round2(apy),
            period_return=round2(daily_return * 100.0),
            days=round2(assumed),
            is_new_position=False,
            confidence=assess_confidence(apy, False),
            calculation_method=METHOD_REWARDS,
            warnings=tuple(warnings),
            current_value=current.value,
            historical_value=prior.value,
            unclaimed_rewards=current.rewards,
            period_start=prior.timestamp,
        )

    def value_change(
        self,
        current: Observation,
        prior: Observation,
        *,
        method: str = METHOD_VALUE_CHANGE,
    ) -> APYResult:
        days = elapsed_days(current, prior)
        period_return = current.value / prior.value - 1.0
        apy = compound_annualize(period_return, days) * 100.0
        return APYResult(
            apy=round2(apy),
            period_return=round2(period_return * 100.0),
            days=round2(days),
            is_new_position=False,
            confidence=assess_confidence(apy, False),
            calculation_method=method,
            current_value=current.value,
            historical_value=prior.value,
            unclaimed_rewards=current.rewards,
            period_start=prior.timestamp,
        )

    def price_change(
        self,
        current: Observation,
        prior: Observation | None,
        *,
        method: str = METHOD_TOKEN_PRICE,
    ) -> APYResult | None:
        """Token return on unit price; no result without a positive prior price."""

        if current.value <= 0 or prior is None or prior.value <= 0:
            return None
        return self.value_change(current, prior, method=method)


__all__ = ["ReturnCalculator", "assess_confidence", "elapsed_days"]
