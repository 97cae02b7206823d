"""APY aggregation across identities and lookback periods.

:class:`APYEngine` is the request-facing entry point. For a user and a target
date it loads the snapshot history once, resolves the identities live in the
most recent snapshot and evaluates every lookback period for each of them:

- ``daily`` compares against the latest snapshot on or before the previous
  calendar day;
- ``weekly``, ``monthly`` and ``sixMonth`` use the earlier snapshot closest to
  ``current - period`` provided it lies within ``max(1 day, 50% of period)``;
- ``allTime`` compares against the first snapshot in which the identity
  appears.

Every result is validated against APYs computed at earlier anchors, and the
response carries a ``_qualityMetrics`` entry summarising coverage and
confidence. Responses are cached with an expiry derived from that quality.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import date
from typing import Any

import pandas as pd

from .accessor import (
    SnapshotAccessor,
    SnapshotStore,
    closest_snapshot,
    latest_on_or_before,
    merge_daily,
)
from .analytics.metrics import round2, weighted_confidence
from .cache import ResultCache, SUMMARY, result_key, select_ttl, summary_key, user_prefix
from .calculator import ReturnCalculator
from .config import EngineConfig
from .core import (
    ALL_TIME,
    PERIOD_NAMES,
    PERIODS,
    QUALITY_METRICS_KEY,
    APYResult,
    Observation,
    QualityMetrics,
    Snapshot,
    SnapshotStoreError,
    TokenHolding,
    ValidationError,
    to_utc_timestamp,
)
from .core.constants import (
    METHOD_ALL_TIME,
    METHOD_PORTFOLIO,
    METHOD_SNAPSHOT,
    METHOD_SYSTEM_ERROR,
    METHOD_TOKEN_ALL_TIME,
    METHOD_TOKEN_PRICE,
    METHOD_VALIDATION_ERROR,
    METHOD_VALUE_CHANGE,
)
from .identity import ambiguity_warning, group_by_identity, position_identity, token_identity
from .validation import OutlierValidator

logger = logging.getLogger(__name__)

POSITIONS = "positions"
TOKENS = "tokens"
PORTFOLIO = "portfolio"

_ONE_DAY = pd.Timedelta(days=1)
_ONE_NS = pd.Timedelta(1, "ns")


def _unit_price(tokens: Sequence[TokenHolding]) -> float:
    """Value-weighted unit price of one symbol held on possibly several chains."""

    amount = sum(t.amount for t in tokens)
    value = sum(t.usd_value for t in tokens)
    if amount > 0 and value > 0:
        return value / amount
    prices = [t.price for t in tokens if t.price > 0]
    return prices[0] if prices else 0.0


def _observe(
    snapshot: Snapshot, kind: str
) -> tuple[dict[str, Observation], dict[str, str], dict[str, int], dict[str, float]]:
    """Observations keyed by identity plus position types, duplicate counts and USD held."""

    if kind == PORTFOLIO:
        rewards = sum(p.reward_value for p in snapshot.positions)
        value = snapshot.portfolio_value
        return {PORTFOLIO: Observation(value, snapshot.date, rewards)}, {}, {}, {PORTFOLIO: value}
    if kind == TOKENS:
        token_groups = group_by_identity(snapshot.tokens, token_identity)
        observations = {
            key: Observation(_unit_price(members), snapshot.date)
            for key, members in token_groups.items()
        }
        held = {key: sum(t.usd_value for t in members) for key, members in token_groups.items()}
        return observations, {}, {}, held

    groups = group_by_identity(snapshot.positions, position_identity)
    observations = {
        key: Observation(
            value=sum(p.total_value for p in members),
            timestamp=snapshot.date,
            rewards=sum(p.reward_value for p in members),
        )
        for key, members in groups.items()
    }
    types = {key: members[0].position_type for key, members in groups.items()}
    counts = {key: len(members) for key, members in groups.items()}
    held = {key: obs.value for key, obs in observations.items()}
    return observations, types, counts, held


class _ObservationBook:
    """Per-day observations of one kind over an ordered snapshot history."""

    def __init__(self, snapshots: Sequence[Snapshot], kind: str) -> None:
        self.kind = kind
        self.snapshots = list(snapshots)
        self.position_types: dict[str, str] = {}
        self.duplicates: dict[str, int] = {}
        self.weights: dict[str, float] = {}
        self._by_day: dict[pd.Timestamp, dict[str, Observation]] = {}
        for snapshot in self.snapshots:
            observations, types, counts, weights = _observe(snapshot, kind)
            self._by_day[snapshot.day] = observations
            self.position_types.update(types)
            self.duplicates = counts
            self.weights = weights

    @property
    def current(self) -> Snapshot | None:
        return self.snapshots[-1] if self.snapshots else None

    def observation(self, snapshot: Snapshot | None, identity: str) -> Observation | None:
        if snapshot is None:
            return None
        return self._by_day.get(snapshot.day, {}).get(identity)

    def live_identities(self) -> list[str]:
        current = self.current
        if current is None:
            return []
        return [key for key, obs in self._by_day[current.day].items() if obs.value > 0]

    def first_appearance(self, identity: str) -> Snapshot | None:
        for snapshot in self.snapshots:
            if identity in self._by_day[snapshot.day]:
                return snapshot
        return None


class APYEngine:
    """Compute, validate and cache APYs for a user's positions and tokens.

    Parameters
    ----------
    store:
        Asynchronous :class:`~wallet_yield_lab.accessor.SnapshotStore`.
    cache:
        Result cache; a process-local :class:`ResultCache` by default.
    config:
        Engine tunables, see :class:`~wallet_yield_lab.config.EngineConfig`.
    clock:
        Callable returning the current UTC timestamp, used to validate and
        default target dates.
    """

    def __init__(
        self,
        store: SnapshotStore,
        *,
        cache: ResultCache | None = None,
        config: EngineConfig | None = None,
        calculator: ReturnCalculator | None = None,
        validator: OutlierValidator | None = None,
        clock: Callable[[], pd.Timestamp] | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.accessor = SnapshotAccessor(store, timeout_s=self.config.snapshot_timeout_s)
        self.cache = cache or ResultCache(config=self.config)
        self.calculator = calculator or ReturnCalculator(self.config)
        self.validator = validator or OutlierValidator()
        self._clock = clock or (lambda: pd.Timestamp.now(tz="UTC"))

    async def start(self) -> None:
        await self.cache.start()

    async def stop(self) -> None:
        await self.cache.stop()

    async def __aenter__(self) -> "APYEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # request validation
    # ------------------------------------------------------------------
    def validate_request(self, user_id: object, target_date: object = None) -> pd.Timestamp:
        """Return the normalised target timestamp or raise :class:`ValidationError`."""

        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("user_id is required")
        now = self._clock()
        if target_date is None:
            return now
        if not isinstance(target_date, (str, date)):
            raise ValidationError(
                f"target date must be a date or ISO string, got {type(target_date).__name__}"
            )
        try:
            target = to_utc_timestamp(target_date)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"invalid target date {target_date!r}") from exc
        if pd.isna(target):
            raise ValidationError(f"invalid target date {target_date!r}")
        if target > now + pd.Timedelta(days=self.config.max_future_days):
            raise ValidationError(
                f"target date {target.date()} is more than "
                f"{self.config.max_future_days} day(s) in the future"
            )
        if target < now - pd.DateOffset(years=self.config.max_past_years):
            raise ValidationError(
                f"target date {target.date()} is more than "
                f"{self.config.max_past_years} years in the past"
            )
        return target

    # ------------------------------------------------------------------
    # summaries
    # ------------------------------------------------------------------
    async def calculate_position_apys(
        self, user_id: str, target_date: object = None
    ) -> dict[str, Any]:
        """APYs for every live position identity plus ``_qualityMetrics``."""

        return await self._summary(user_id, target_date, POSITIONS)

    async def calculate_token_apys(self, user_id: str, target_date: object = None) -> dict[str, Any]:
        """Price-based APYs for every wallet token plus ``_qualityMetrics``."""

        return await self._summary(user_id, target_date, TOKENS)

    async def calculate_portfolio_performance(
        self, user_id: str, target_date: object = None
    ) -> dict[str, Any]:
        """APYs on total portfolio value, keyed ``"portfolio"``."""

        return await self._summary(user_id, target_date, PORTFOLIO)

    async def calculate_all(self, user_id: str, target_date: object = None) -> dict[str, Any]:
        """Positions, tokens and portfolio computed concurrently."""

        self.validate_request(user_id, target_date)
        positions, tokens, portfolio = await asyncio.gather(
            self.calculate_position_apys(user_id, target_date),
            self.calculate_token_apys(user_id, target_date),
            self.calculate_portfolio_performance(user_id, target_date),
        )
        return {POSITIONS: positions, TOKENS: tokens, PORTFOLIO: portfolio}

    async def _summary(self, user_id: str, target_date: object, kind: str) -> dict[str, Any]:
        target = self.validate_request(user_id, target_date)
        key = summary_key(user_id, kind, target)
        return await self.cache.get_or_compute(
            key,
            lambda: self._compute_summary(user_id, target, kind),
            self._summary_ttl,
        )

    async def _compute_summary(
        self, user_id: str, target: pd.Timestamp, kind: str
    ) -> dict[str, Any]:
        try:
            snapshots = await self.accessor.history(
                user_id, target, lookback_days=self.config.history_limit_days
            )
        except SnapshotStoreError as exc:
            logger.warning("Cannot compute %s APYs for %s: %s", kind, user_id, exc)
            metrics = QualityMetrics(0.0, "low", None, error=str(exc))
            return {QUALITY_METRICS_KEY: metrics.to_dict()}

        book = _ObservationBook(snapshots, kind)
        response: dict[str, Any] = {}
        slots: list[tuple[str, APYResult | None]] = []
        identities = book.live_identities()
        for identity in identities:
            try:
                periods = {period: self._period_result(book, identity, period) for period in PERIOD_NAMES}
            except Exception as exc:
                logger.exception("APY calculation failed for %s/%s", user_id, identity)
                periods = {
                    period: APYResult.degraded([f"Calculation failed: {exc}"])
                    for period in PERIOD_NAMES
                }
            response[identity] = {
                period: result.to_dict() if result is not None else None
                for period, result in periods.items()
            }
            slots.extend((identity, result) for result in periods.values())

        metrics = self._quality(book, slots, len(identities))
        response[QUALITY_METRICS_KEY] = metrics.to_dict()
        logger.info(
            "Computed %s APYs for %s: %d identities, %.2f%% complete, %s confidence",
            kind,
            user_id,
            len(identities),
            metrics.data_completeness,
            metrics.overall_confidence,
        )
        return response

    def _summary_ttl(self, response: dict[str, Any]) -> int:
        metrics = response.get(QUALITY_METRICS_KEY, {})
        return select_ttl(
            metrics.get("overallConfidence", "low"),
            metrics.get("dataCompleteness", 0.0),
            is_error="error" in metrics,
            config=self.config,
        )

    def _quality(
        self,
        book: _ObservationBook,
        slots: Sequence[tuple[str, APYResult | None]],
        identity_count: int,
    ) -> QualityMetrics:
        scored = [(key, r) for key, r in slots if r is not None and not r.is_degraded]
        completeness = round2(len(scored) / len(slots) * 100.0) if slots else 0.0
        overall = weighted_confidence(
            [r.confidence for _, r in scored], [book.weights.get(key, 0.0) for key, _ in scored]
        )
        current = book.current
        return QualityMetrics(
            data_completeness=completeness,
            overall_confidence=overall,
            last_data_update=current.date if current is not None else None,
            snapshot_count=len(book.snapshots),
            identity_count=identity_count,
            reliability_score=float(min(100, len(book.snapshots) * 14)),
        )

    # ------------------------------------------------------------------
    # single identity
    # ------------------------------------------------------------------
    async def calculate_position_apy(
        self,
        user_id: str,
        identity: str,
        period: str,
        target_date: object = None,
    ) -> APYResult | None:
        """Result for one position identity and period.

        Invalid requests and store failures come back as degraded results
        (``apy is None``) instead of raising; ``None`` means no data.
        """

        try:
            target = self.validate_request(user_id, target_date)
            if not identity:
                raise ValidationError("identity is required")
            if period not in PERIOD_NAMES:
                raise ValidationError(f"unknown period {period!r}; expected one of {PERIOD_NAMES}")
        except ValidationError as exc:
            logger.info("Rejected APY request for %r: %s", user_id, exc)
            return APYResult.degraded([str(exc)], method=METHOD_VALIDATION_ERROR)

        key = result_key(user_id, identity, period, target)
        return await self.cache.get_or_compute(
            key,
            lambda: self._compute_position(user_id, identity, period, target),
            self._result_ttl,
        )

    async def _compute_position(
        self, user_id: str, identity: str, period: str, target: pd.Timestamp
    ) -> APYResult | None:
        try:
            current_snapshot = await self.accessor.snapshot_at(user_id, target)
            if current_snapshot is None:
                return None
            if period == ALL_TIME:
                earlier = await self.accessor.snapshots_between(
                    user_id, None, current_snapshot.day - _ONE_NS
                )
                book = _ObservationBook(merge_daily([*earlier, current_snapshot]), POSITIONS)
                return self._period_result(book, identity, period)

            days = PERIODS[period]
            anchor = current_snapshot.date
            if days == 1:
                prior_lookup = self.accessor.latest_until_yesterday(user_id, anchor)
            else:
                prior_lookup = self.accessor.closest_to(
                    user_id, anchor - pd.Timedelta(days=days), window_days=self._tolerance_days(days)
                )
            lookback = days + int(self._tolerance_days(days)) + self.config.history_window + 1
            prior_snapshot, history = await asyncio.gather(
                prior_lookup,
                self.accessor.history(user_id, current_snapshot.day, lookback_days=lookback),
            )
        except SnapshotStoreError as exc:
            logger.warning("Cannot compute %s APY for %s/%s: %s", period, user_id, identity, exc)
            return APYResult.degraded([f"Snapshot store unavailable: {exc}"])

        book = _ObservationBook(history, POSITIONS)
        current = book.observation(current_snapshot, identity)
        if current is None:
            return None
        if prior_snapshot is not None and prior_snapshot.day >= current_snapshot.day:
            prior_snapshot = None
        if prior_snapshot is None and days != 1:
            return None
        prior = _observe(prior_snapshot, POSITIONS)[0].get(identity) if prior_snapshot else None
        return self._finish(
            book,
            identity,
            period,
            current,
            prior,
            history=self._apy_history(book, identity, period),
        )

    def _result_ttl(self, result: APYResult) -> int:
        if result.calculation_method == METHOD_SYSTEM_ERROR:
            return select_ttl(result.confidence, 0.0, is_error=True, config=self.config)
        return select_ttl(
            result.confidence, 0.0 if result.is_degraded else 100.0, config=self.config
        )

    # ------------------------------------------------------------------
    # cache invalidation
    # ------------------------------------------------------------------
    async def invalidate_user_cache(self, user_id: str) -> int:
        """Drop every cached result for ``user_id``; call after new snapshots land."""

        return await self.cache.invalidate_user(user_id)

    async def invalidate_position_cache(self, user_id: str, identity: str) -> int:
        """Drop one identity's results and the user's summaries that embed them."""

        removed = await self.cache.invalidate_position(user_id, identity)
        removed += await self.cache.invalidate(f"{user_prefix(user_id)}{SUMMARY}:")
        return removed

    # ------------------------------------------------------------------
    # period evaluation
    # ------------------------------------------------------------------
    def _tolerance_days(self, days: int) -> float:
        return max(1.0, days * self.config.period_tolerance_ratio)

    def _prior_snapshot(
        self, earlier: Sequence[Snapshot], anchor: Snapshot, days: int
    ) -> Snapshot | None:
        if days == 1:
            return latest_on_or_before(earlier, anchor.day - _ONE_DAY)
        target = anchor.date - pd.Timedelta(days=days)
        candidate = closest_snapshot(earlier, target)
        if candidate is None:
            return None
        if abs(candidate.date - target) > pd.Timedelta(days=self._tolerance_days(days)):
            return None
        return candidate

    def _period_result(
        self, book: _ObservationBook, identity: str, period: str
    ) -> APYResult | None:
        anchor = book.current
        current = book.observation(anchor, identity)
        if anchor is None or current is None:
            return None

        if period == ALL_TIME:
            first = book.first_appearance(identity)
            if first is None or first.day >= anchor.day:
                return None
            return self._finish(book, identity, period, current, book.observation(first, identity))

        days = PERIODS[period]
        prior_snapshot = self._prior_snapshot(book.snapshots[:-1], anchor, days)
        if prior_snapshot is None and not (days == 1 and book.kind == POSITIONS):
            return None
        return self._finish(
            book,
            identity,
            period,
            current,
            book.observation(prior_snapshot, identity),
            history=self._apy_history(book, identity, period),
        )

    def _apy_history(self, book: _ObservationBook, identity: str, period: str) -> list[float]:
        """APYs for the same period computed at earlier anchors with the same branch selection."""

        days = PERIODS[period]
        values: list[float] = []
        end = len(book.snapshots) - 1
        for idx in range(max(0, end - self.config.history_window), end):
            anchor = book.snapshots[idx]
            current = book.observation(anchor, identity)
            if current is None or current.value <= 0:
                continue
            prior = book.observation(self._prior_snapshot(book.snapshots[:idx], anchor, days), identity)
            if prior is None or prior.value <= 0:
                continue
            earlier = self._calculate(book.kind, period, current, prior)
            if earlier is not None and earlier.apy is not None:
                values.append(earlier.apy)
        return values

    def _calculate(
        self, kind: str, period: str, current: Observation, prior: Observation | None
    ) -> APYResult | None:
        if kind == TOKENS:
            method = METHOD_TOKEN_ALL_TIME if period == ALL_TIME else METHOD_TOKEN_PRICE
            return self.calculator.price_change(current, prior, method=method)
        if kind == PORTFOLIO:
            method = METHOD_PORTFOLIO
        elif period == ALL_TIME:
            method = METHOD_ALL_TIME
        elif PERIODS[period] == 1:
            method = METHOD_VALUE_CHANGE
        else:
            method = METHOD_SNAPSHOT
        return self.calculator.calculate(current, prior, method=method)

    def _finish(
        self,
        book: _ObservationBook,
        identity: str,
        period: str,
        current: Observation,
        prior: Observation | None,
        *,
        history: Sequence[float] = (),
    ) -> APYResult | None:
        result = self._calculate(book.kind, period, current, prior)
        if result is None:
            return None
        result = self.validator.validate(
            result, history=history, position_type=book.position_types.get(identity)
        )
        duplicates = book.duplicates.get(identity, 1)
        if duplicates > 1:
            result = replace(
                result, warnings=result.warnings + (ambiguity_warning(identity, duplicates),)
            )
        return result


__all__ = ["APYEngine", "PORTFOLIO", "POSITIONS", "TOKENS"]
