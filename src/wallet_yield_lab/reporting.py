from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pandas as pd

from .core import PERIOD_NAMES, QUALITY_METRICS_KEY, APYResult

# Display preference when picking a single headline APY per identity.
_BEST_PERIOD_ORDER = ("monthly", "weekly", "daily")
_RELIABLE = {"high", "medium"}

_FRAME_COLUMNS = [
    "identity",
    "period",
    "apy",
    "period_return",
    "days",
    "confidence",
    "calculation_method",
    "is_new_position",
    "current_value",
    "historical_value",
    "unclaimed_rewards",
    "warnings",
]


def _ensure_outdir(outdir: str | Path) -> Path:
    p = Path(outdir)
    p.mkdir(parents=True, exist_ok=True)
    return p


def _as_dict(result: APYResult | Mapping[str, Any] | None) -> dict[str, Any] | None:
    if result is None:
        return None
    if isinstance(result, APYResult):
        return result.to_dict()
    return dict(result)


def format_apy_for_display(result: APYResult | Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Add display strings and a reliability flag to a serialised result.

    ``formattedAPY`` is signed with two decimals (``+5.25%``); degraded results
    show ``n/a``. ``isReliable`` holds for ``high`` and ``medium`` confidence.
    """

    data = _as_dict(result)
    if data is None:
        return None
    apy = data.get("apy")
    value = data.get("currentValue")
    data["formattedAPY"] = f"{apy:+.2f}%" if apy is not None else "n/a"
    data["formattedValue"] = f"${value:,.2f}" if value is not None else "n/a"
    data["confidenceLevel"] = data.get("confidence")
    data["isReliable"] = apy is not None and data.get("confidence") in _RELIABLE
    return data


def best_period_apy(periods: Mapping[str, Any]) -> dict[str, Any] | None:
    """Longest period with a usable, reliable APY for headline display."""

    for period in _BEST_PERIOD_ORDER:
        data = _as_dict(periods.get(period))
        if data is None or data.get("apy") is None:
            continue
        if data.get("confidence") in _RELIABLE:
            return {"period": period, "apy": data["apy"], "confidence": data["confidence"]}
    return None


def results_frame(response: Mapping[str, Any]) -> pd.DataFrame:
    """Long-form table with one row per identity and period that has a result."""

    rows: list[dict[str, Any]] = []
    for identity, periods in response.items():
        if identity == QUALITY_METRICS_KEY or not isinstance(periods, Mapping):
            continue
        for period in PERIOD_NAMES:
            data = _as_dict(periods.get(period))
            if data is None:
                continue
            rows.append(
                {
                    "identity": identity,
                    "period": period,
                    "apy": data.get("apy"),
                    "period_return": data.get("periodReturn"),
                    "days": data.get("days"),
                    "confidence": data.get("confidence"),
                    "calculation_method": data.get("calculationMethod"),
                    "is_new_position": data.get("isNewPosition"),
                    "current_value": data.get("currentValue"),
                    "historical_value": data.get("historicalValue"),
                    "unclaimed_rewards": data.get("unclaimedRewards"),
                    "warnings": "; ".join(data.get("warnings") or []),
                }
            )
    return pd.DataFrame(rows, columns=_FRAME_COLUMNS)


def write_apy_report(
    response: Mapping[str, Any],
    outdir: str | Path,
    *,
    prefix: str = "positions",
) -> dict[str, Path]:
    """Write CSV outputs for one engine response.

    Writes the following CSVs:
      - ``{prefix}_apy.csv``: every identity/period result
      - ``{prefix}_best.csv``: headline APY per identity
      - ``{prefix}_quality.csv``: the response's quality metrics
    """

    out = _ensure_outdir(outdir)
    paths: dict[str, Path] = {}

    frame = results_frame(response)
    paths["apy"] = out / f"{prefix}_apy.csv"
    frame.to_csv(paths["apy"], index=False)

    best_rows: list[dict[str, Any]] = []
    for identity, periods in response.items():
        if identity == QUALITY_METRICS_KEY or not isinstance(periods, Mapping):
            continue
        best = best_period_apy(periods)
        best_rows.append(
            {
                "identity": identity,
                "period": best["period"] if best else None,
                "apy": best["apy"] if best else None,
                "confidence": best["confidence"] if best else None,
            }
        )
    paths["best"] = out / f"{prefix}_best.csv"
    pd.DataFrame(best_rows, columns=["identity", "period", "apy", "confidence"]).to_csv(
        paths["best"], index=False
    )

    quality = response.get(QUALITY_METRICS_KEY, {})
    paths["quality"] = out / f"{prefix}_quality.csv"
    pd.DataFrame([quality]).to_csv(paths["quality"], index=False)
    return paths


__all__ = ["best_period_apy", "format_apy_for_display", "results_frame", "write_apy_report"]
