"""CSV-backed snapshot source."""

from __future__ import annotations

import pandas as pd

from ..core import Position, Snapshot, TokenHolding, to_utc_timestamp


def _num(row: pd.Series, col: str) -> float:
    value = pd.to_numeric(row.get(col, 0.0), errors="coerce")
    return 0.0 if pd.isna(value) else float(value)


def _text(row: pd.Series, col: str) -> str:
    value = row.get(col, "")
    return "" if pd.isna(value) else str(value)


class CSVSnapshotSource:
    """Load snapshots from a flat CSV with one row per holding per day.

    Required columns are ``date``, ``user_id``, ``kind`` (``position`` or
    ``token``), ``symbol`` and ``usd_value``. Position rows may add
    ``protocol``, ``chain``, ``position_type``, ``rewards_usd`` and
    ``reward_symbol``; LP positions list their supply symbols separated by
    ``/`` and the value is split evenly across them. Token rows may add
    ``amount`` and ``price``.
    """

    REQUIRED = {"date", "user_id", "kind", "symbol", "usd_value"}

    def __init__(self, path: str) -> None:
        self.path = path

    def fetch(self) -> list[Snapshot]:
        df = pd.read_csv(self.path)
        missing = self.REQUIRED.difference(df.columns)
        if missing:
            raise ValueError(f"CSV missing columns: {missing}")
        df["date"] = pd.to_datetime(df["date"], utc=True)
        df["user_id"] = df["user_id"].astype(str)

        snapshots: list[Snapshot] = []
        for (user_id, date), group in df.groupby(["user_id", "date"], sort=True):
            positions: list[Position] = []
            tokens: list[TokenHolding] = []
            wallet: str | None = None
            for _, r in group.iterrows():
                wallet = wallet or (_text(r, "wallet_address").lower() or None)
                if _text(r, "kind").lower() == "token":
                    amount, price = _num(r, "amount"), _num(r, "price")
                    tokens.append(
                        TokenHolding(
                            symbol=_text(r, "symbol"),
                            amount=amount,
                            price=price,
                            usd_value=_num(r, "usd_value") or amount * price,
                            chain=_text(r, "chain"),
                        )
                    )
                    continue
                positions.append(self._position(r))
            snapshots.append(
                Snapshot(
                    user_id=str(user_id),
                    date=to_utc_timestamp(date),
                    positions=tuple(positions),
                    tokens=tuple(tokens),
                    wallet_address=wallet,
                )
            )
        return snapshots

    @staticmethod
    def _position(r: pd.Series) -> Position:
        symbols = [s.strip() for s in _text(r, "symbol").split("/") if s.strip()]
        value = _num(r, "usd_value")
        rewards = _num(r, "rewards_usd")
        share = value / len(symbols) if symbols else 0.0
        supply = tuple(TokenHolding(symbol=s, usd_value=share) for s in symbols)
        reward_tokens: tuple[TokenHolding, ...] = ()
        if rewards > 0:
            reward_tokens = (TokenHolding(symbol=_text(r, "reward_symbol") or "REWARD", usd_value=rewards),)
        return Position(
            protocol_name=_text(r, "protocol"),
            chain=_text(r, "chain"),
            position_type=_text(r, "position_type"),
            supply_tokens=supply,
            reward_tokens=reward_tokens,
            total_value=value + rewards,
        )


__all__ = ["CSVSnapshotSource"]
