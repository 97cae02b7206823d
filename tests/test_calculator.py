from __future__ import annotations

import pandas as pd
import pytest

from wallet_yield_lab.calculator import ReturnCalculator, assess_confidence
from wallet_yield_lab.config import EngineConfig
from wallet_yield_lab.core import Observation
from wallet_yield_lab.core.constants import (
    METHOD_NEW_POSITION,
    METHOD_REWARDS,
    METHOD_SNAPSHOT,
    METHOD_TOKEN_PRICE,
    METHOD_VALUE_CHANGE,
)

T0 = pd.Timestamp("2026-10-01T00:00:00Z")


def _obs(value: float, days: float = 0.0, rewards: float = 0.0) -> Observation:
    return Observation(value=value, timestamp=T0 + pd.Timedelta(days=days), rewards=rewards)


@pytest.fixture
def calculator() -> ReturnCalculator:
    return ReturnCalculator()


def test_new_position_annualises_rewards_linearly(calculator: ReturnCalculator) -> None:
    result = calculator.calculate(_obs(1_000.0, rewards=10.0), None)
    assert result is not None
    assert result.apy == 365.00
    assert result.period_return == 1.0
    assert result.days == 1.0
    assert result.is_new_position is True
    assert result.calculation_method == METHOD_NEW_POSITION
    assert result.confidence == "low"
    assert any("Assumed 1 day old" in w for w in result.warnings)


def test_new_position_without_rewards_reports_zero(calculator: ReturnCalculator) -> None:
    result = calculator.calculate(_obs(1_000.0), None)
    assert result is not None
    assert result.apy == 0.0
    assert result.confidence == "low"
    assert result.is_new_position is True
    assert result.warnings


def test_value_change_compounds_over_elapsed_days(calculator: ReturnCalculator) -> None:
    result = calculator.calculate(_obs(1_070.0, days=7), _obs(1_000.0), method=METHOD_SNAPSHOT)
    assert result is not None
    assert result.period_return == 7.0
    assert result.days == 7.0
    assert result.apy == round(((1.07) ** (365 / 7) - 1) * 100, 2)
    assert result.calculation_method == METHOD_SNAPSHOT
    assert result.historical_value == 1_000.0
    assert result.period_start == T0
    assert result.confidence == "low"


def test_default_method_is_value_change(calculator: ReturnCalculator) -> None:
    result = calculator.calculate(_obs(1_001.0, days=30), _obs(1_000.0))
    assert result is not None
    assert result.calculation_method == METHOD_VALUE_CHANGE
    assert result.confidence == "high"


def test_zero_current_value_yields_no_result(calculator: ReturnCalculator) -> None:
    assert calculator.calculate(_obs(0.0, days=1), _obs(1_000.0)) is None
    assert calculator.calculate(_obs(-5.0), None) is None


def test_non_positive_prior_is_treated_as_new_position(calculator: ReturnCalculator) -> None:
    result = calculator.calculate(_obs(1_000.0, days=1, rewards=1.0), _obs(0.0))
    assert result is not None
    assert result.is_new_position is True
    assert any("Prior value was zero" in w for w in result.warnings)


def test_stable_value_with_rewards_uses_rewards_branch(calculator: ReturnCalculator) -> None:
    result = calculator.calculate(_obs(10_000.0, days=1, rewards=50.0), _obs(10_000.0))
    assert result is not None
    assert result.calculation_method == METHOD_REWARDS
    # 50 / (10_000 * 0.001) = 5 days, clamped up to the 7 day minimum
    assert result.days == 7.0
    assert result.apy == round(50.0 / (10_000.0 * 7) * 365 * 100, 2)
    assert result.confidence == "high"


def test_rewards_branch_is_capped(calculator: ReturnCalculator) -> None:
    result = calculator.calculate(_obs(1_000.0, days=1, rewards=300.0), _obs(995.0))
    assert result is not None
    assert result.calculation_method == METHOD_REWARDS
    assert result.days == 30.0
    assert result.apy == 200.0
    assert result.confidence == "medium"
    assert any("capped" in w for w in result.warnings)


def test_rewards_window_follows_config() -> None:
    calc = ReturnCalculator(EngineConfig(rewards_min_days=1.0, rewards_max_days=3.0))
    assert calc.assumed_accrual_days(50.0, 10_000.0) == 3.0
    assert calc.assumed_accrual_days(0.5, 10_000.0) == 1.0


def test_elapsed_days_has_a_floor(calculator: ReturnCalculator) -> None:
    result = calculator.calculate(_obs(1_000.5), _obs(1_000.0))
    assert result is not None
    assert result.days == 0.1


def test_total_loss_annualises_to_minus_hundred(calculator: ReturnCalculator) -> None:
    result = calculator.calculate(_obs(1.0, days=1), _obs(1_000.0))
    assert result is not None
    assert result.apy == -100.0


def test_price_change_needs_positive_prior(calculator: ReturnCalculator) -> None:
    assert calculator.price_change(_obs(101.0, days=1), None) is None
    assert calculator.price_change(_obs(101.0, days=1), _obs(0.0)) is None
    result = calculator.price_change(_obs(101.0, days=1), _obs(100.0))
    assert result is not None
    assert result.calculation_method == METHOD_TOKEN_PRICE
    assert result.period_return == 1.0


@pytest.mark.parametrize(
    ("apy", "is_new", "expected"),
    [
        (1500.0, True, "very_low"),
        (150.0, True, "low"),
        (50.0, True, "medium"),
        (20_000.0, False, "very_low"),
        (-2_000.0, False, "low"),
        (150.0, False, "medium"),
        (8.0, False, "high"),
    ],
)
def test_assess_confidence_by_magnitude(apy: float, is_new: bool, expected: str) -> None:
    assert assess_confidence(apy, is_new) == expected
