"""Ingestion pipeline loading snapshot sources into a repository."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from typing import TypeVar

from ..core import Snapshot, SnapshotRepository
from ..sources import SnapshotSource

logger = logging.getLogger(__name__)


T = TypeVar("T")


def _iter_instances(items: Iterable[object], cls: type[T]) -> Iterator[T]:
    for item in items:
        if isinstance(item, cls):
            yield item


class Pipeline:
    """Composable pipeline merging several snapshot sources."""

    def __init__(self, sources: Sequence[SnapshotSource]) -> None:
        self._sources: list[SnapshotSource] = list(sources)

    def run(self, repo: SnapshotRepository | None = None) -> SnapshotRepository:
        repo = repo if repo is not None else SnapshotRepository()
        for source in self._sources:
            try:
                items = source.fetch()
            except Exception as exc:
                logger.warning("Source %s failed: %s", source.__class__.__name__, exc)
                continue
            loaded = list(_iter_instances(items, Snapshot))
            repo.extend(loaded)
            logger.info("Loaded %d snapshots from %s", len(loaded), source.__class__.__name__)
        return repo


__all__ = ["Pipeline"]
