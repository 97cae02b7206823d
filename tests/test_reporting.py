from __future__ import annotations

from pathlib import Path

import pandas as pd

from wallet_yield_lab.core import QUALITY_METRICS_KEY, APYResult
from wallet_yield_lab.reporting import (
    best_period_apy,
    format_apy_for_display,
    results_frame,
    write_apy_report,
)


def _result(apy: float | None, confidence: str, value: float = 1_234.5) -> dict[str, object]:
    return {
        "apy": apy,
        "periodReturn": 0.1 if apy is not None else None,
        "days": 1.0,
        "isNewPosition": False,
        "confidence": confidence,
        "warnings": ["a", "b"] if apy is not None else [],
        "calculationMethod": "snapshot_based_apy",
        "currentValue": value,
        "historicalValue": 1_000.0,
        "unclaimedRewards": 0.0,
    }


def _response() -> dict[str, object]:
    return {
        "aave_v3_ethereum_lending_usdc": {
            "daily": _result(5.25, "high"),
            "weekly": _result(4.0, "low"),
            "monthly": None,
            "sixMonth": None,
            "allTime": _result(4.5, "medium"),
        },
        "lido_ethereum_staking_steth": {
            "daily": _result(-3.0, "low"),
            "weekly": None,
            "monthly": None,
            "sixMonth": None,
            "allTime": None,
        },
        QUALITY_METRICS_KEY: {"dataCompleteness": 40.0, "overallConfidence": "medium"},
    }


def test_format_apy_for_display_adds_strings_and_reliability() -> None:
    formatted = format_apy_for_display(_result(5.25, "high"))
    assert formatted is not None
    assert formatted["formattedAPY"] == "+5.25%"
    assert formatted["formattedValue"] == "$1,234.50"
    assert formatted["isReliable"] is True

    negative = format_apy_for_display(_result(-3.0, "low"))
    assert negative is not None
    assert negative["formattedAPY"] == "-3.00%"
    assert negative["isReliable"] is False

    assert format_apy_for_display(None) is None


def test_format_accepts_result_objects_and_degraded_results() -> None:
    formatted = format_apy_for_display(APYResult.degraded(["store down"]))
    assert formatted is not None
    assert formatted["formattedAPY"] == "n/a"
    assert formatted["isReliable"] is False


def test_best_period_prefers_longest_reliable() -> None:
    periods = _response()["aave_v3_ethereum_lending_usdc"]
    assert best_period_apy(periods) == {"period": "daily", "apy": 5.25, "confidence": "high"}
    assert best_period_apy(_response()["lido_ethereum_staking_steth"]) is None


def test_results_frame_is_long_form() -> None:
    df = results_frame(_response())
    assert len(df) == 4
    assert set(df["identity"]) == {"aave_v3_ethereum_lending_usdc", "lido_ethereum_staking_steth"}
    daily = df[(df["identity"] == "aave_v3_ethereum_lending_usdc") & (df["period"] == "daily")]
    assert daily["warnings"].iloc[0] == "a; b"
    assert results_frame({QUALITY_METRICS_KEY: {}}).empty


def test_write_apy_report_creates_csvs(tmp_path: Path) -> None:
    paths = write_apy_report(_response(), tmp_path / "out", prefix="positions")
    assert set(paths) == {"apy", "best", "quality"}
    for path in paths.values():
        assert path.exists()
    best = pd.read_csv(paths["best"])
    assert best.loc[best["identity"] == "aave_v3_ethereum_lending_usdc", "period"].iloc[0] == "daily"
    quality = pd.read_csv(paths["quality"])
    assert quality["dataCompleteness"].iloc[0] == 40.0
