import sys
from pathlib import Path


# Ensure the package is importable without installation when running tests locally
pkg_src = Path(__file__).resolve().parents[1] / "src"
if str(pkg_src) not in sys.path:
    sys.path.insert(0, str(pkg_src))

import pandas as pd  # noqa: E402
import pytest  # noqa: E402

from wallet_yield_lab.core import Position, Snapshot, TokenHolding, to_utc_timestamp  # noqa: E402

NOW = pd.Timestamp("2026-10-16T12:00:00Z")


def _position(
    protocol: str = "Aave V3",
    chain: str = "ethereum",
    position_type: str = "lending",
    symbols: tuple[str, ...] = ("USDC",),
    value: float = 1_000.0,
    rewards: float = 0.0,
) -> Position:
    """Position whose ``total_value`` is ``value`` (explicit total, rewards included)."""

    supply_value = max(value - rewards, 0.0)
    supply = tuple(TokenHolding(symbol=s, usd_value=supply_value / len(symbols)) for s in symbols)
    reward_tokens = (TokenHolding(symbol="REW", usd_value=rewards),) if rewards else ()
    return Position(
        protocol_name=protocol,
        chain=chain,
        position_type=position_type,
        supply_tokens=supply,
        reward_tokens=reward_tokens,
        total_value=value,
    )


def _snapshot(
    date: str,
    positions: tuple[Position, ...] | list[Position] = (),
    tokens: tuple[TokenHolding, ...] | list[TokenHolding] = (),
    *,
    user_id: str = "user-1",
    nav: float = 0.0,
    wallet: str | None = None,
) -> Snapshot:
    return Snapshot(
        user_id=user_id,
        date=to_utc_timestamp(date),
        positions=tuple(positions),
        tokens=tuple(tokens),
        wallet_address=wallet,
        total_nav_usd=nav,
    )


@pytest.fixture
def now() -> pd.Timestamp:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def make_position():
    return _position


@pytest.fixture
def make_snapshot():
    return _snapshot
