"""In-memory snapshot store for WalletYieldLab data models."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

import pandas as pd

from .models import Snapshot, to_utc_timestamp


class SnapshotRepository:
    """Lightweight in-memory snapshot store with pandas export.

    Implements the asynchronous ``SnapshotStore`` protocol consumed by
    :class:`~wallet_yield_lab.accessor.SnapshotAccessor`. Snapshots are kept
    ordered by date per user.
    """

    def __init__(self, snapshots: Iterable[Snapshot] | None = None) -> None:
        self._by_user: dict[str, list[Snapshot]] = {}
        if snapshots:
            self.extend(snapshots)

    def add(self, snapshot: Snapshot) -> None:
        rows = self._by_user.setdefault(snapshot.user_id, [])
        rows.append(snapshot)
        rows.sort(key=lambda s: s.date)

    def extend(self, items: Iterable[Snapshot]) -> None:
        for snapshot in items:
            self.add(snapshot)

    def users(self) -> list[str]:
        return sorted(self._by_user)

    async def find_snapshot(self, user_id: str, at_or_before: object) -> Snapshot | None:
        """Return the most recent snapshot dated at or before ``at_or_before``."""

        cutoff = to_utc_timestamp(at_or_before)
        found: Snapshot | None = None
        for snapshot in self._by_user.get(user_id, []):
            if snapshot.date > cutoff:
                break
            found = snapshot
        return found

    async def find_snapshots(
        self, user_id: str, start: object | None, end: object | None
    ) -> list[Snapshot]:
        """Return snapshots within ``[start, end]`` ordered by date ascending."""

        lo = to_utc_timestamp(start) if start is not None else None
        hi = to_utc_timestamp(end) if end is not None else None
        res: list[Snapshot] = []
        for snapshot in self._by_user.get(user_id, []):
            if lo is not None and snapshot.date < lo:
                continue
            if hi is not None and snapshot.date > hi:
                continue
            res.append(snapshot)
        return res

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([s.to_dict() for s in self])

    def __len__(self) -> int:
        return sum(len(rows) for rows in self._by_user.values())

    def __iter__(self) -> Iterator[Snapshot]:
        for user_id in self.users():
            yield from self._by_user[user_id]


__all__ = ["SnapshotRepository"]
