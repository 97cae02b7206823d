"""Statistical and contextual validation of computed APYs.

Each check is independent and only ever adds a :class:`Flag`; none rejects a
result. Flags downgrade the result's confidence (one step for ``medium``
severity, two for ``high``) and append a warning. Confidence never rises
above the calculator's baseline and never drops below ``low`` unless the
baseline itself was ``very_low``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any

import pandas as pd

from .core import APYResult
from .core.constants import CONFIDENCE_LEVELS
from .market_context import check_market_context

logger = logging.getLogger(__name__)

SEVERITY_STEPS = {"medium": 1, "high": 2}
_FLOOR = CONFIDENCE_LEVELS.index("low")


@dataclass(frozen=True)
class Flag:
    check: str
    severity: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"check": self.check, "severity": self.severity, "message": self.message}


def downgrade(baseline: str, steps: int) -> str:
    """Lower ``baseline`` by ``steps`` levels, floored at ``low``."""

    if baseline == "very_low":
        return baseline
    try:
        idx = CONFIDENCE_LEVELS.index(baseline)
    except ValueError:
        return "low"
    return CONFIDENCE_LEVELS[min(idx + max(0, steps), _FLOOR)]


def _clean_history(history: Iterable[float] | pd.Series | None) -> pd.Series:
    if history is None:
        return pd.Series(dtype=float)
    series = pd.to_numeric(pd.Series(list(history), dtype=object), errors="coerce").astype(float)
    series = series.replace([float("inf"), float("-inf")], float("nan")).dropna()
    return series.reset_index(drop=True)


def _trend(series: pd.Series) -> str | None:
    if series.size < 2:
        return None
    half = series.size // 2
    first, second = float(series.iloc[:half].mean()), float(series.iloc[half:].mean())
    scale = max(abs(first), 1e-9)
    change = (second - first) / scale
    if change > 0.1:
        return "rising"
    if change < -0.1:
        return "falling"
    return "flat"


class OutlierValidator:
    """Run outlier, sanity and market-context checks on an :class:`APYResult`."""

    def __init__(
        self,
        *,
        z_medium: float = 3.0,
        z_high: float = 5.0,
        iqr_medium: float = 1.5,
        iqr_high: float = 3.0,
        change_medium_pct: float = 50.0,
        change_high_pct: float = 100.0,
        volatility_max_days: float = 7.0,
        volatility_apy: float = 500.0,
        min_z_history: int = 3,
        min_iqr_history: int = 5,
    ) -> None:
        self.z_medium = z_medium
        self.z_high = z_high
        self.iqr_medium = iqr_medium
        self.iqr_high = iqr_high
        self.change_medium_pct = change_medium_pct
        self.change_high_pct = change_high_pct
        self.volatility_max_days = volatility_max_days
        self.volatility_apy = volatility_apy
        self.min_z_history = min_z_history
        self.min_iqr_history = min_iqr_history

    def check_z_score(self, value: float, history: pd.Series) -> tuple[float | None, Flag | None]:
        if history.size < self.min_z_history:
            return None, None
        std = float(history.std(ddof=1))
        if not math.isfinite(std) or std == 0.0:
            return None, None
        z = (value - float(history.mean())) / std
        if abs(z) > self.z_high:
            severity = "high"
        elif abs(z) > self.z_medium:
            severity = "medium"
        else:
            return z, None
        return z, Flag(
            "z_score",
            severity,
            f"APY of {value:.2f}% is {abs(z):.1f} standard deviations from its history",
        )

    def check_iqr(self, value: float, history: pd.Series) -> tuple[dict[str, float] | None, Flag | None]:
        if history.size < self.min_iqr_history:
            return None, None
        q1, q3 = float(history.quantile(0.25)), float(history.quantile(0.75))
        iqr = q3 - q1
        bounds = {
            "q1": q1,
            "q3": q3,
            "lower": q1 - self.iqr_medium * iqr,
            "upper": q3 + self.iqr_medium * iqr,
        }
        if value < q1 - self.iqr_high * iqr or value > q3 + self.iqr_high * iqr:
            severity = "high"
        elif value < bounds["lower"] or value > bounds["upper"]:
            severity = "medium"
        else:
            return bounds, None
        return bounds, Flag(
            "iqr",
            severity,
            f"APY of {value:.2f}% lies outside the historical range "
            f"{bounds['lower']:.2f}%..{bounds['upper']:.2f}%",
        )

    def check_percentage_change(
        self, current_value: float | None, historical_value: float | None
    ) -> Flag | None:
        if not current_value or not historical_value or historical_value <= 0:
            return None
        change = abs(current_value / historical_value - 1.0) * 100.0
        if change > self.change_high_pct:
            severity = "high"
        elif change > self.change_medium_pct:
            severity = "medium"
        else:
            return None
        return Flag(
            "percentage_change",
            severity,
            f"Value moved {change:.2f}% between observations; possible deposit, withdrawal or data error",
        )

    def check_volatility(self, apy: float, days: float) -> Flag | None:
        if days < self.volatility_max_days and abs(apy) > self.volatility_apy:
            return Flag(
                "short_window_volatility",
                "high",
                f"Short period ({days:g} days) with APY of {apy:.2f}% may not be representative",
            )
        return None

    def validate(
        self,
        result: APYResult,
        *,
        history: Iterable[float] | pd.Series | None = None,
        historical_value: float | None = None,
        position_type: str | None = None,
    ) -> APYResult:
        """Return ``result`` with downgraded confidence, warnings and flag report."""

        if result.apy is None:
            return result
        apy = float(result.apy)
        series = _clean_history(history)
        flags: list[Flag] = []

        z, z_flag = self.check_z_score(apy, series)
        bounds, iqr_flag = self.check_iqr(apy, series)
        change_flag = self.check_percentage_change(
            result.current_value,
            historical_value if historical_value is not None else result.historical_value,
        )
        vol_flag = self.check_volatility(apy, result.days)
        band, outside = check_market_context(apy, position_type)
        market_flag = None
        if outside:
            market_flag = Flag(
                "market_context",
                "high" if band.name == "extreme_risk" else "medium",
                f"APY of {apy:.2f}% outside expected {band.description.lower()} range "
                f"({band.min_apy:g}%..{band.max_apy:g}%)",
            )
        for flag in (z_flag, iqr_flag, change_flag, vol_flag, market_flag):
            if flag is not None:
                flags.append(flag)

        steps = sum(SEVERITY_STEPS[f.severity] for f in flags)
        confidence = downgrade(result.confidence, steps)
        if flags:
            logger.debug(
                "APY %.2f%% flagged by %s; confidence %s -> %s",
                apy,
                [f.check for f in flags],
                result.confidence,
                confidence,
            )

        statistical = [f for f in flags if f.check in {"z_score", "iqr"}]
        mean = float(series.mean()) if series.size else None
        deviation = None
        if mean is not None and mean != 0.0:
            deviation = round((apy - mean) / abs(mean) * 100.0, 2)
        report: dict[str, Any] = {
            "outliers": {
                "isStatisticalOutlier": bool(statistical),
                "outlierMethods": [f.check for f in flags if f.check != "market_context"],
                "severity": _max_severity(flags),
                "zScore": round(z, 2) if z is not None else None,
                "iqrBounds": bounds,
            },
            "historical": {
                "hasHistoricalData": bool(series.size),
                "observations": int(series.size),
                "isHistoricalAnomaly": bool(statistical),
                "historicalDeviation": deviation,
                "trendAnalysis": _trend(series),
            },
            "market": {
                "isMarketOutlier": outside,
                "marketContext": band.name,
                "expectedRange": band.to_dict(),
            },
            "flags": [f.to_dict() for f in flags],
        }
        return replace(
            result,
            confidence=confidence,
            warnings=result.warnings + tuple(f.message for f in flags),
            validation=report,
        )


def _max_severity(flags: list[Flag]) -> str:
    if any(f.severity == "high" for f in flags):
        return "high"
    if flags:
        return "medium"
    return "low"


__all__ = ["Flag", "OutlierValidator", "downgrade"]
