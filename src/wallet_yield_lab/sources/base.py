"""Base utilities for WalletYieldLab snapshot sources.

Raw snapshot documents arrive in several shapes (camelCase documents from the
snapshot job, snake_case exports, partially populated positions). The helpers
here turn them into canonical :class:`~wallet_yield_lab.core.Snapshot` objects
exactly once, so that every downstream formula can rely on
``Position.total_value`` and ``TokenHolding.usd_value`` being populated.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from ..core import Position, Snapshot, TokenHolding, to_utc_timestamp

# Direct value fields tried in order before reconstructing from token lists.
POSITION_VALUE_FIELDS = (
    "totalUsdValue",
    "total_usd_value",
    "totalValue",
    "total_value",
    "value",
    "assetUsdValue",
    "asset_usd_value",
)
TOKEN_VALUE_FIELDS = ("usdValue", "usd_value", "value")


def _coerce_float(value: object) -> float:
    """Best-effort conversion to ``float`` returning ``0.0`` on failure."""

    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    return out if math.isfinite(out) else 0.0


def _first(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return default


def _first_positive(raw: Mapping[str, Any], keys: Iterable[str]) -> float:
    for key in keys:
        value = _coerce_float(raw.get(key))
        if value > 0:
            return value
    return 0.0


def normalize_token(raw: Mapping[str, Any]) -> TokenHolding:
    amount = _coerce_float(raw.get("amount"))
    price = _coerce_float(raw.get("price"))
    usd_value = _first_positive(raw, TOKEN_VALUE_FIELDS) or amount * price
    return TokenHolding(
        symbol=str(_first(raw, "symbol", default="")).strip(),
        amount=amount,
        price=price,
        usd_value=usd_value,
        name=str(_first(raw, "name", default="")),
        chain=str(_first(raw, "chain", default="")),
    )


def normalize_position(raw: Mapping[str, Any]) -> Position:
    """Build a :class:`Position` with a canonical ``total_value``."""

    supply = tuple(normalize_token(t) for t in _first(raw, "supplyTokens", "supply_tokens", default=[]))
    rewards = tuple(normalize_token(t) for t in _first(raw, "rewardTokens", "reward_tokens", default=[]))
    total = _first_positive(raw, POSITION_VALUE_FIELDS)
    if total <= 0:
        total = sum(t.usd_value for t in supply) + sum(t.usd_value for t in rewards)
    return Position(
        protocol_name=str(_first(raw, "protocolName", "protocol_name", "protocol", default="")),
        chain=str(_first(raw, "chain", default="")),
        position_type=str(_first(raw, "positionType", "position_type", default="")),
        position_name=str(_first(raw, "positionName", "position_name", default="")),
        protocol_id=str(_first(raw, "protocolId", "protocol_id", default="")),
        supply_tokens=supply,
        reward_tokens=rewards,
        total_value=total,
    )


def normalize_snapshot(raw: Mapping[str, Any], *, user_id: str | None = None) -> Snapshot:
    """Build a :class:`Snapshot` from a raw document.

    Raises ``ValueError`` when the document carries neither a user id nor a
    date, since such a snapshot can never be matched.
    """

    uid = user_id if user_id is not None else _first(raw, "userId", "user_id")
    date = _first(raw, "date", "timestamp")
    if uid is None or date is None:
        raise ValueError("snapshot document requires a user id and a date")
    wallet = _first(raw, "walletAddress", "wallet_address")
    return Snapshot(
        user_id=str(uid),
        date=to_utc_timestamp(date),
        positions=tuple(normalize_position(p) for p in raw.get("positions") or []),
        tokens=tuple(normalize_token(t) for t in raw.get("tokens") or []),
        wallet_address=str(wallet).lower() if wallet else None,
        total_nav_usd=_coerce_float(_first(raw, "totalNavUsd", "total_nav_usd", default=0.0)),
    )


__all__ = [
    "POSITION_VALUE_FIELDS",
    "TOKEN_VALUE_FIELDS",
    "normalize_position",
    "normalize_snapshot",
    "normalize_token",
]
