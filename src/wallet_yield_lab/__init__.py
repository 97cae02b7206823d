"""
WalletYieldLab: APY calculation engine for DeFi wallet positions.

Design goals:
- Immutable data model (Snapshot, Position, TokenHolding) + in-memory store
- Stable identities to match positions and tokens across daily snapshots
- One return calculator with explicit new-position, rewards and value branches
- Statistical and market-context validation feeding a confidence label
- Read-through cache with quality-dependent expiry and explicit invalidation
- No persistence or network clients here; stores and caches are injected.
"""

from __future__ import annotations

import logging

from . import analytics, reporting
from .accessor import SnapshotAccessor, SnapshotStore
from .cache import CacheBackend, InMemoryCache, ResultCache, select_ttl
from .calculator import ReturnCalculator, assess_confidence
from .config import EngineConfig, load_config
from .core import (
    ALL_TIME,
    PERIOD_NAMES,
    PERIODS,
    QUALITY_METRICS_KEY,
    APYResult,
    Observation,
    Position,
    QualityMetrics,
    Snapshot,
    SnapshotRepository,
    SnapshotStoreError,
    TokenHolding,
    ValidationError,
)
from .engine import APYEngine
from .identity import group_by_identity, position_identity, token_identity
from .market_context import MARKET_BANDS, check_market_context
from .pipeline import Pipeline
from .sources import CSVSnapshotSource, JSONSnapshotSource, SnapshotSource
from .validation import OutlierValidator

logger = logging.getLogger(__name__)

__all__ = [
    "ALL_TIME",
    "APYEngine",
    "APYResult",
    "CSVSnapshotSource",
    "CacheBackend",
    "EngineConfig",
    "InMemoryCache",
    "JSONSnapshotSource",
    "MARKET_BANDS",
    "Observation",
    "OutlierValidator",
    "PERIODS",
    "PERIOD_NAMES",
    "Pipeline",
    "Position",
    "QUALITY_METRICS_KEY",
    "QualityMetrics",
    "ResultCache",
    "ReturnCalculator",
    "Snapshot",
    "SnapshotAccessor",
    "SnapshotRepository",
    "SnapshotSource",
    "SnapshotStore",
    "SnapshotStoreError",
    "TokenHolding",
    "ValidationError",
    "analytics",
    "assess_confidence",
    "check_market_context",
    "group_by_identity",
    "load_config",
    "position_identity",
    "reporting",
    "select_ttl",
    "token_identity",
]
