"""Core constants shared across WalletYieldLab modules."""

from __future__ import annotations

# Lookback periods evaluated for every identity, in calendar days. ``allTime``
# is handled separately because its window depends on the available history.
PERIODS: dict[str, int] = {
    "daily": 1,
    "weekly": 7,
    "monthly": 30,
    "sixMonth": 180,
}
ALL_TIME = "allTime"
PERIOD_NAMES: tuple[str, ...] = (*PERIODS, ALL_TIME)

# Confidence labels ordered from most to least reliable.
CONFIDENCE_LEVELS: tuple[str, ...] = ("high", "medium", "low", "very_low")
CONFIDENCE_SCORES: dict[str, float] = {
    "high": 3.0,
    "medium": 2.0,
    "low": 1.0,
    "very_low": 0.0,
}

# Calculation method tags reported on every result.
METHOD_NEW_POSITION = "new_position_1_day_assumption"
METHOD_REWARDS = "rewards_based_apy"
METHOD_VALUE_CHANGE = "existing_position_value_change"
METHOD_SNAPSHOT = "snapshot_based_apy"
METHOD_ALL_TIME = "all_time_snapshot_apy"
METHOD_TOKEN_PRICE = "token_price_based_apy"
METHOD_TOKEN_ALL_TIME = "all_time_token_apy"
METHOD_PORTFOLIO = "portfolio_value_change"
METHOD_VALIDATION_ERROR = "validation_error"
METHOD_SYSTEM_ERROR = "system_error"

UNKNOWN = "unknown"
QUALITY_METRICS_KEY = "_qualityMetrics"

__all__ = [
    "ALL_TIME",
    "CONFIDENCE_LEVELS",
    "CONFIDENCE_SCORES",
    "METHOD_ALL_TIME",
    "METHOD_NEW_POSITION",
    "METHOD_PORTFOLIO",
    "METHOD_REWARDS",
    "METHOD_SNAPSHOT",
    "METHOD_SYSTEM_ERROR",
    "METHOD_TOKEN_ALL_TIME",
    "METHOD_TOKEN_PRICE",
    "METHOD_VALIDATION_ERROR",
    "METHOD_VALUE_CHANGE",
    "PERIODS",
    "PERIOD_NAMES",
    "QUALITY_METRICS_KEY",
    "UNKNOWN",
]
