"""Core data structures for :mod:`wallet_yield_lab`.

This subpackage groups the fundamental models, constants, errors and the
in-memory snapshot repository so they can be shared without importing the
entire public interface exposed in :mod:`wallet_yield_lab.__init__`.
"""

from __future__ import annotations

from .constants import (
    ALL_TIME,
    CONFIDENCE_LEVELS,
    CONFIDENCE_SCORES,
    PERIOD_NAMES,
    PERIODS,
    QUALITY_METRICS_KEY,
)
from .errors import SnapshotStoreError, ValidationError
from .models import (
    APYResult,
    Observation,
    Position,
    QualityMetrics,
    Snapshot,
    TokenHolding,
    to_utc_timestamp,
)
from .repositories import SnapshotRepository

__all__ = [
    "ALL_TIME",
    "APYResult",
    "CONFIDENCE_LEVELS",
    "CONFIDENCE_SCORES",
    "Observation",
    "PERIODS",
    "PERIOD_NAMES",
    "Position",
    "QUALITY_METRICS_KEY",
    "QualityMetrics",
    "Snapshot",
    "SnapshotRepository",
    "SnapshotStoreError",
    "TokenHolding",
    "ValidationError",
    "to_utc_timestamp",
]
