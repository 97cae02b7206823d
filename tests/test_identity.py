from __future__ import annotations

from wallet_yield_lab.core import Position, TokenHolding
from wallet_yield_lab.identity import (
    ambiguity_warning,
    group_by_identity,
    position_identity,
    token_identity,
)


def test_position_identity_is_stable_under_token_order(make_position) -> None:
    a = make_position(protocol="Uniswap V3", chain="Arbitrum", position_type="liquidity", symbols=("WETH", "USDC"))
    b = make_position(protocol="Uniswap V3", chain="Arbitrum", position_type="liquidity", symbols=("USDC", "WETH"))
    assert position_identity(a) == position_identity(b) == "uniswap_v3_arbitrum_liquidity_usdc-weth"


def test_position_identity_ignores_amounts_and_rewards(make_position) -> None:
    small = make_position(value=10.0)
    large = make_position(value=10_000.0, rewards=25.0)
    assert position_identity(small) == position_identity(large)


def test_position_identity_uses_placeholders_for_missing_fields() -> None:
    position = Position(protocol_name="", chain="", supply_tokens=(TokenHolding(symbol=""),))
    assert position_identity(position) == "unknown_unknown_unknown_unknown"


def test_position_identity_never_raises_on_foreign_objects() -> None:
    assert position_identity(object()) == "unknown_unknown_unknown_unknown"  # type: ignore[arg-type]


def test_identity_components_are_cache_key_safe(make_position) -> None:
    key = position_identity(make_position(protocol="Curve: 3pool", chain="eth mainnet"))
    assert ":" not in key
    assert key.startswith("curve_3pool_eth_mainnet_")


def test_token_identity_is_upper_case_symbol() -> None:
    assert token_identity(TokenHolding(symbol="usdc")) == "USDC"
    assert token_identity(TokenHolding(symbol="")) == "UNKNOWN"


def test_group_by_identity_keeps_colliding_positions_together(make_position) -> None:
    first = make_position(value=100.0)
    second = make_position(value=200.0)
    other = make_position(protocol="Lido", position_type="staking", symbols=("stETH",))
    groups = group_by_identity([first, other, second], position_identity)
    assert list(groups) == [position_identity(first), position_identity(other)]
    assert groups[position_identity(first)] == [first, second]


def test_ambiguity_warning_names_key_and_count() -> None:
    message = ambiguity_warning("aave_v3_ethereum_lending_usdc", 2)
    assert message.startswith("Ambiguous identity: 2 positions share key aave_v3_ethereum_lending_usdc")
