"""Snapshot source adapters used by :mod:`wallet_yield_lab`."""

from __future__ import annotations

from typing import Protocol

from ..core import Snapshot
from .base import normalize_position, normalize_snapshot, normalize_token
from .csv import CSVSnapshotSource
from .snapshots import JSONSnapshotSource


class SnapshotSource(Protocol):
    """Adapter protocol returning snapshots compatible with :class:`SnapshotRepository`."""

    def fetch(self) -> list[Snapshot]: ...


__all__ = [
    "CSVSnapshotSource",
    "JSONSnapshotSource",
    "SnapshotSource",
    "normalize_position",
    "normalize_snapshot",
    "normalize_token",
]
