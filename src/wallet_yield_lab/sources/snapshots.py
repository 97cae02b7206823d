"""JSON snapshot export loader."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from ..core import Snapshot
from .base import normalize_snapshot

logger = logging.getLogger(__name__)


class JSONSnapshotSource:
    """Load snapshot documents from a JSON file.

    The file holds either a list of snapshot documents or an object with a
    ``snapshots`` list. Documents that cannot be normalised are skipped with a
    warning so one bad capture does not hide the rest of the history.
    """

    def __init__(self, path: str, *, user_id: str | None = None) -> None:
        self.path = Path(path)
        self.user_id = user_id

    def _load(self) -> list[dict[str, Any]]:
        with self.path.open() as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("snapshots", [])
        if not isinstance(data, list):
            raise ValueError(f"{self.path} does not contain a snapshot list")
        return data

    def fetch(self) -> list[Snapshot]:
        snapshots: list[Snapshot] = []
        for i, raw in enumerate(self._load()):
            try:
                snapshot = normalize_snapshot(raw, user_id=self.user_id)
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping snapshot #%d in %s: %s", i, self.path, exc)
                continue
            snapshots.append(snapshot)
        return snapshots


__all__ = ["JSONSnapshotSource"]
