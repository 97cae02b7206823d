"""Immutable data models used throughout WalletYieldLab."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

import pandas as pd

from .constants import METHOD_SYSTEM_ERROR


def to_utc_timestamp(value: object) -> pd.Timestamp:
    """Coerce dates, datetimes and strings to a timezone-aware UTC timestamp."""

    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


@dataclass(frozen=True)
class TokenHolding:
    """Token balance valued in USD at capture time."""

    symbol: str
    amount: float = 0.0
    price: float = 0.0
    usd_value: float = 0.0
    name: str = ""
    chain: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Position:
    """Protocol position with principal (supply) and unclaimed reward tokens."""

    protocol_name: str
    chain: str
    position_type: str = ""
    position_name: str = ""
    protocol_id: str = ""
    supply_tokens: tuple[TokenHolding, ...] = ()
    reward_tokens: tuple[TokenHolding, ...] = ()
    total_value: float = 0.0

    @property
    def supply_value(self) -> float:
        return sum(t.usd_value for t in self.supply_tokens)

    @property
    def reward_value(self) -> float:
        """Unclaimed rewards in USD."""
        return sum(t.usd_value for t in self.reward_tokens)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["supply_value"] = self.supply_value
        data["reward_value"] = self.reward_value
        return data


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time capture of one user's holdings."""

    user_id: str
    date: pd.Timestamp
    positions: tuple[Position, ...] = ()
    tokens: tuple[TokenHolding, ...] = ()
    wallet_address: str | None = None
    total_nav_usd: float = 0.0

    @property
    def day(self) -> pd.Timestamp:
        return self.date.normalize()

    @property
    def portfolio_value(self) -> float:
        if self.total_nav_usd > 0:
            return self.total_nav_usd
        return sum(p.total_value for p in self.positions) + sum(t.usd_value for t in self.tokens)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "date": self.date,
            "wallet_address": self.wallet_address,
            "positions": len(self.positions),
            "tokens": len(self.tokens),
            "portfolio_value": self.portfolio_value,
        }


@dataclass(frozen=True)
class Observation:
    """Numeric input to the return calculator for one identity at one time."""

    value: float
    timestamp: pd.Timestamp
    rewards: float = 0.0


@dataclass(frozen=True)
class APYResult:
    """Annualised return for one identity over one lookback period.

    ``apy`` and ``period_return`` are percentages. ``apy`` is ``None`` only on
    degraded results produced for validation or system errors.
    """

    apy: float | None
    period_return: float | None
    days: float
    is_new_position: bool
    confidence: str
    calculation_method: str
    warnings: tuple[str, ...] = ()
    current_value: float | None = None
    historical_value: float | None = None
    unclaimed_rewards: float = 0.0
    period_start: pd.Timestamp | None = None
    validation: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def degraded(
        cls,
        warnings: list[str] | tuple[str, ...],
        *,
        method: str = METHOD_SYSTEM_ERROR,
    ) -> "APYResult":
        return cls(
            apy=None,
            period_return=None,
            days=0.0,
            is_new_position=False,
            confidence="low",
            calculation_method=method,
            warnings=tuple(warnings),
        )

    @property
    def is_degraded(self) -> bool:
        return self.apy is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "apy": self.apy,
            "periodReturn": self.period_return,
            "days": self.days,
            "isNewPosition": self.is_new_position,
            "confidence": self.confidence,
            "warnings": list(self.warnings),
            "calculationMethod": self.calculation_method,
            "currentValue": self.current_value,
            "historicalValue": self.historical_value,
            "unclaimedRewards": self.unclaimed_rewards,
            "periodStart": self.period_start.isoformat() if self.period_start is not None else None,
            "validationFlags": self.validation,
        }


@dataclass(frozen=True)
class QualityMetrics:
    """Portfolio-level data quality derived from a set of results."""

    data_completeness: float
    overall_confidence: str
    last_data_update: pd.Timestamp | None
    snapshot_count: int = 0
    identity_count: int = 0
    reliability_score: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "dataCompleteness": self.data_completeness,
            "overallConfidence": self.overall_confidence,
            "lastDataUpdate": (
                self.last_data_update.isoformat() if self.last_data_update is not None else None
            ),
            "snapshotCount": self.snapshot_count,
            "identityCount": self.identity_count,
            "reliabilityScore": self.reliability_score,
        }
        if self.error:
            data["error"] = self.error
        return data


__all__ = [
    "APYResult",
    "Observation",
    "Position",
    "QualityMetrics",
    "Snapshot",
    "TokenHolding",
    "to_utc_timestamp",
]
