from __future__ import annotations

"""Market-context sanity bands for annualised yields."""

from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True)
class MarketBand:
    """Plausible APY range (percent) for a class of DeFi activity."""

    name: str
    min_apy: float
    max_apy: float
    description: str

    def contains(self, apy: float) -> bool:
        return self.min_apy <= apy <= self.max_apy

    def to_dict(self) -> dict[str, object]:
        return {"min": self.min_apy, "max": self.max_apy, "description": self.description}


MARKET_BANDS: Mapping[str, MarketBand] = {
    "stable_defi": MarketBand("stable_defi", 0.0, 50.0, "Stable DeFi protocols"),
    "lending": MarketBand("lending", 0.0, 25.0, "Lending markets"),
    "liquidity_provision": MarketBand(
        "liquidity_provision", -20.0, 200.0, "Liquidity provision incl. impermanent loss"
    ),
    "yield_farming": MarketBand("yield_farming", -50.0, 1000.0, "Incentivised yield farming"),
    "extreme_risk": MarketBand("extreme_risk", -100.0, 10000.0, "Extreme-risk strategies"),
}

# Position types recorded by the snapshot job mapped to their expected band.
POSITION_TYPE_CONTEXT: Mapping[str, str] = {
    "lending": "lending",
    "staking": "stable_defi",
    "vault": "stable_defi",
    "liquidity": "liquidity_provision",
    "farming": "yield_farming",
}

# Magnitude buckets (upper bound of |apy|) used when the type is unknown.
_MAGNITUDE_BUCKETS: tuple[tuple[float, str], ...] = (
    (25.0, "lending"),
    (50.0, "stable_defi"),
    (200.0, "liquidity_provision"),
    (1000.0, "yield_farming"),
)


def infer_market_context(apy: float, position_type: str | None = None) -> str:
    """Return the band name for ``apy``.

    A known position type wins; otherwise the band is picked from the
    magnitude of ``apy`` so that the check catches values whose sign or size
    is implausible for their own bucket (negative lending yields, losses
    beyond -100%, gains above 10,000%).
    """

    if position_type:
        context = POSITION_TYPE_CONTEXT.get(position_type.strip().lower())
        if context:
            return context
    magnitude = abs(apy)
    for upper, name in _MAGNITUDE_BUCKETS:
        if magnitude <= upper:
            return name
    return "extreme_risk"


def check_market_context(apy: float, position_type: str | None = None) -> tuple[MarketBand, bool]:
    """Return the applicable band and whether ``apy`` falls outside it."""

    band = MARKET_BANDS[infer_market_context(apy, position_type)]
    return band, not band.contains(apy)


__all__ = [
    "MARKET_BANDS",
    "MarketBand",
    "POSITION_TYPE_CONTEXT",
    "check_market_context",
    "infer_market_context",
]
