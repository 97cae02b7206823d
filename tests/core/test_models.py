from __future__ import annotations

import pandas as pd

from wallet_yield_lab.core import APYResult, QualityMetrics, TokenHolding, to_utc_timestamp
from wallet_yield_lab.core.constants import METHOD_SYSTEM_ERROR, METHOD_VALIDATION_ERROR


def test_to_utc_timestamp_localises_naive_and_converts_aware() -> None:
    naive = to_utc_timestamp("2026-10-01 12:00")
    assert str(naive.tz) == "UTC"
    aware = to_utc_timestamp(pd.Timestamp("2026-10-01T14:00:00+02:00"))
    assert aware == naive


def test_apy_result_serialises_camel_case() -> None:
    result = APYResult(
        apy=12.5,
        period_return=0.24,
        days=7.0,
        is_new_position=False,
        confidence="high",
        calculation_method="snapshot_based_apy",
        warnings=("note",),
        current_value=1_002.4,
        historical_value=1_000.0,
        period_start=pd.Timestamp("2026-10-01T00:00:00Z"),
    )
    data = result.to_dict()
    assert data["periodReturn"] == 0.24
    assert data["isNewPosition"] is False
    assert data["calculationMethod"] == "snapshot_based_apy"
    assert data["warnings"] == ["note"]
    assert data["periodStart"] == "2026-10-01T00:00:00+00:00"
    assert data["validationFlags"] == {}


def test_degraded_result_has_no_apy_and_low_confidence() -> None:
    result = APYResult.degraded(["store unavailable"])
    assert result.apy is None
    assert result.is_degraded
    assert result.confidence == "low"
    assert result.calculation_method == METHOD_SYSTEM_ERROR

    rejected = APYResult.degraded(["bad date"], method=METHOD_VALIDATION_ERROR)
    assert rejected.to_dict()["calculationMethod"] == METHOD_VALIDATION_ERROR


def test_quality_metrics_only_reports_error_when_set() -> None:
    ok = QualityMetrics(80.0, "high", None).to_dict()
    assert "error" not in ok
    assert ok["dataCompleteness"] == 80.0
    failed = QualityMetrics(0.0, "low", None, error="timed out").to_dict()
    assert failed["error"] == "timed out"


def test_snapshot_portfolio_value_prefers_nav(make_snapshot, make_position) -> None:
    positions = [make_position(value=1_000.0), make_position(protocol="Lido", value=500.0)]
    tokens = [TokenHolding(symbol="ETH", usd_value=250.0)]
    assert make_snapshot("2026-10-01", positions, tokens).portfolio_value == 1_750.0
    assert make_snapshot("2026-10-01", positions, tokens, nav=2_000.0).portfolio_value == 2_000.0
