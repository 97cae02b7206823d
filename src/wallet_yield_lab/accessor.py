"""Read-only access to a user's snapshot history."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from typing import Protocol, TypeVar, runtime_checkable

import pandas as pd

from .core import Snapshot, SnapshotStoreError, to_utc_timestamp

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class SnapshotStore(Protocol):
    """Persistence boundary owned by the ingestion path.

    Implementations return snapshots ordered by date ascending and never
    expose mutable state to the engine.
    """

    async def find_snapshot(self, user_id: str, at_or_before: object) -> Snapshot | None: ...

    async def find_snapshots(
        self, user_id: str, start: object | None, end: object | None
    ) -> list[Snapshot]: ...


def closest_snapshot(snapshots: Sequence[Snapshot], target: pd.Timestamp) -> Snapshot | None:
    """Snapshot whose date is nearest to ``target``; ties go to the older one."""

    closest: Snapshot | None = None
    closest_diff: pd.Timedelta | None = None
    for snapshot in snapshots:
        diff = abs(snapshot.date - target)
        if closest_diff is None or diff < closest_diff:
            closest, closest_diff = snapshot, diff
    return closest


def merge_daily(snapshots: Sequence[Snapshot]) -> list[Snapshot]:
    """Combine same-day captures (one per wallet) into a single snapshot per day."""

    by_day: dict[pd.Timestamp, list[Snapshot]] = {}
    for snapshot in snapshots:
        by_day.setdefault(snapshot.day, []).append(snapshot)
    merged: list[Snapshot] = []
    for day in sorted(by_day):
        group = by_day[day]
        if len(group) == 1:
            merged.append(group[0])
            continue
        merged.append(
            Snapshot(
                user_id=group[0].user_id,
                date=max(s.date for s in group),
                positions=tuple(p for s in group for p in s.positions),
                tokens=tuple(t for s in group for t in s.tokens),
                total_nav_usd=sum(s.total_nav_usd for s in group),
            )
        )
    return merged


def latest_on_or_before(snapshots: Sequence[Snapshot], day: pd.Timestamp) -> Snapshot | None:
    """Most recent snapshot captured on or before the calendar day ``day``."""

    found: Snapshot | None = None
    for snapshot in snapshots:
        if snapshot.day <= day.normalize():
            found = snapshot
    return found


class SnapshotAccessor:
    """Timeout-bounded reads from a :class:`SnapshotStore`.

    Any store failure, including a timeout, surfaces as
    :class:`~wallet_yield_lab.core.SnapshotStoreError`.
    """

    def __init__(self, store: SnapshotStore, *, timeout_s: float = 10.0) -> None:
        self.store = store
        self.timeout_s = timeout_s

    async def _bounded(self, op: str, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            logger.warning("Snapshot store %s timed out after %.1fs", op, self.timeout_s)
            raise SnapshotStoreError(f"snapshot store {op} timed out") from exc
        except SnapshotStoreError:
            raise
        except Exception as exc:
            logger.warning("Snapshot store %s failed: %s", op, exc)
            raise SnapshotStoreError(f"snapshot store {op} failed: {exc}") from exc

    async def snapshot_at(self, user_id: str, target: object) -> Snapshot | None:
        """Most recent day at or before the target day, merged across wallets."""

        cutoff = to_utc_timestamp(target).normalize() + pd.Timedelta(days=1) - pd.Timedelta(1, "ns")
        latest = await self._bounded("find_snapshot", self.store.find_snapshot(user_id, cutoff))
        if latest is None:
            return None
        same_day = await self.snapshots_between(
            user_id, latest.day, latest.day + pd.Timedelta(days=1) - pd.Timedelta(1, "ns")
        )
        merged = merge_daily(same_day)
        return merged[-1] if merged else latest

    async def snapshots_between(
        self, user_id: str, start: object | None, end: object | None
    ) -> list[Snapshot]:
        rows = await self._bounded("find_snapshots", self.store.find_snapshots(user_id, start, end))
        return sorted(rows, key=lambda s: s.date)

    async def history(self, user_id: str, target: object, *, lookback_days: int) -> list[Snapshot]:
        """Snapshots from ``lookback_days`` before the target day up to its end."""

        day = to_utc_timestamp(target).normalize()
        start = day - pd.Timedelta(days=lookback_days)
        end = day + pd.Timedelta(days=1) - pd.Timedelta(1, "ns")
        return merge_daily(await self.snapshots_between(user_id, start, end))

    async def closest_to(
        self, user_id: str, target: object, *, window_days: float = 7
    ) -> Snapshot | None:
        """Snapshot nearest to ``target`` within ``window_days`` on either side."""

        ts = to_utc_timestamp(target)
        rows = await self.snapshots_between(
            user_id, ts - pd.Timedelta(days=window_days), ts + pd.Timedelta(days=window_days)
        )
        return closest_snapshot(merge_daily(rows), ts)

    async def latest_until_yesterday(self, user_id: str, target: object) -> Snapshot | None:
        """Most recent snapshot on or before the day preceding ``target``."""

        yesterday = to_utc_timestamp(target).normalize() - pd.Timedelta(days=1)
        return await self.snapshot_at(user_id, yesterday)


__all__ = [
    "SnapshotAccessor",
    "SnapshotStore",
    "closest_snapshot",
    "latest_on_or_before",
    "merge_daily",
]
