"""Result cache with confidence-dependent expiry and prefix invalidation.

:class:`ResultCache` prefers an injected external :class:`CacheBackend` and
falls back to the process-local :class:`InMemoryCache` whenever the backend
raises; callers never see which one served a request. The cache is
write-invalidate: whenever fresh snapshot data is stored for a user, the
caller purges that user's prefix before the next read.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .config import EngineConfig
from .core import to_utc_timestamp

logger = logging.getLogger(__name__)

KEY_PREFIX = "apy"
SUMMARY = "summary"


@runtime_checkable
class CacheBackend(Protocol):
    """Shared key-value cache reachable over the network."""

    async def get(self, key: str) -> Any | None: ...

    async def set_with_ttl(self, key: str, value: Any, ttl: int) -> None: ...

    async def delete_by_prefix(self, prefix: str) -> int: ...


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    ttl: int


def _day(target_date: object) -> str:
    return to_utc_timestamp(target_date).strftime("%Y-%m-%d")


def user_prefix(user_id: str) -> str:
    return f"{KEY_PREFIX}:{user_id}:"


def identity_prefix(user_id: str, identity: str) -> str:
    return f"{user_prefix(user_id)}{identity}:"


def result_key(user_id: str, identity: str, period: str, target_date: object) -> str:
    """Key for one identity/period result, truncated to the target day."""
    return f"{identity_prefix(user_id, identity)}{period}:{_day(target_date)}"


def summary_key(user_id: str, kind: str, target_date: object) -> str:
    return f"{user_prefix(user_id)}{SUMMARY}:{kind}:{_day(target_date)}"


def select_ttl(
    confidence: str,
    completeness: float,
    *,
    is_error: bool = False,
    config: EngineConfig | None = None,
) -> int:
    """TTL in seconds for a result of the given quality."""

    cfg = config or EngineConfig()
    if is_error:
        return cfg.ttl_error_s
    if confidence == "high" and completeness >= 80:
        return cfg.ttl_long_s
    if confidence == "medium" and completeness >= 60:
        return cfg.ttl_medium_s
    return cfg.ttl_short_s


class InMemoryCache:
    """Process-local fallback cache guarded by a single lock.

    Expired entries are dropped lazily on read and by a periodic sweep task
    started with :meth:`start` and cancelled by :meth:`stop`.
    """

    def __init__(
        self,
        *,
        sweep_interval_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self.sweep_interval_s = sweep_interval_s
        self._sweeper: asyncio.Task[None] | None = None

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.value

    async def set_with_ttl(self, key: str, value: Any, ttl: int) -> None:
        async with self._lock:
            self._entries[key] = CacheEntry(value, self._clock() + ttl, ttl)

    async def ttl_of(self, key: str) -> int | None:
        async with self._lock:
            entry = self._entries.get(key)
            return entry.ttl if entry else None

    async def delete_by_prefix(self, prefix: str) -> int:
        async with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    async def sweep(self) -> int:
        now = self._clock()
        async with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_s)
            await self.sweep()

    def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    def __len__(self) -> int:
        return len(self._entries)


class ResultCache:
    """Read-through cache facade over an optional external backend.

    When the backend cannot purge a prefix, keys under that prefix bypass the
    backend until a retried purge succeeds, so entries written before the
    invalidation never resurface once the backend recovers.
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        *,
        fallback: InMemoryCache | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.backend = backend
        self.fallback = fallback or InMemoryCache(sweep_interval_s=self.config.sweep_interval_s)
        self._inflight: dict[str, asyncio.Future[Any]] = {}
        self._inflight_lock = asyncio.Lock()
        self._unpurged: set[str] = set()
        self._stamp = 0
        self._invalidated_at: dict[str, int] = {}
        self._computing = 0

    async def start(self) -> None:
        self.fallback.start()

    async def stop(self) -> None:
        await self.fallback.stop()

    async def _purge_backend(self, prefix: str) -> int | None:
        """Delete ``prefix`` from the backend; ``None`` when the backend failed."""

        assert self.backend is not None
        try:
            removed = await self.backend.delete_by_prefix(prefix)
        except Exception as exc:
            logger.warning("Cache backend invalidation failed for %s: %s", prefix, exc)
            self._unpurged.add(prefix)
            return None
        self._unpurged.discard(prefix)
        return removed

    async def _backend_usable(self, key: str) -> bool:
        if self.backend is None:
            return False
        for prefix in [p for p in self._unpurged if key.startswith(p)]:
            removed = await self._purge_backend(prefix)
            if removed is None:
                return False
            logger.info("Deferred invalidation of %s removed %d backend entries", prefix, removed)
        return True

    async def get(self, key: str) -> Any | None:
        if await self._backend_usable(key):
            try:
                value = await self.backend.get(key)  # type: ignore[union-attr]
            except Exception as exc:
                logger.warning("Cache backend get failed for %s: %s; using in-process cache", key, exc)
            else:
                if value is not None:
                    return value
        return await self.fallback.get(key)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        if self.backend is not None and not any(key.startswith(p) for p in self._unpurged):
            try:
                await self.backend.set_with_ttl(key, value, ttl)
                return
            except Exception as exc:
                logger.warning("Cache backend set failed for %s: %s; using in-process cache", key, exc)
        await self.fallback.set_with_ttl(key, value, ttl)

    async def invalidate(self, prefix: str) -> int:
        """Purge every entry under ``prefix`` from both backends.

        Computations for keys under ``prefix`` already in flight when this
        runs do not write their results, and later callers no longer join
        them. Other keys are unaffected.
        """

        self._stamp += 1
        self._invalidated_at[prefix] = self._stamp
        async with self._inflight_lock:
            for key in [k for k in self._inflight if k.startswith(prefix)]:
                del self._inflight[key]
        removed = await self.fallback.delete_by_prefix(prefix)
        if self.backend is not None:
            removed += await self._purge_backend(prefix) or 0
        logger.info("Invalidated %d cache entries under %s", removed, prefix)
        return removed

    def _invalidated_since(self, key: str, stamp: int) -> bool:
        return any(
            key.startswith(prefix) and at > stamp for prefix, at in self._invalidated_at.items()
        )

    async def invalidate_user(self, user_id: str) -> int:
        return await self.invalidate(user_prefix(user_id))

    async def invalidate_position(self, user_id: str, identity: str) -> int:
        return await self.invalidate(identity_prefix(user_id, identity))

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl_for: Callable[[Any], int],
    ) -> Any:
        """Return the cached value or compute, store and return it.

        Concurrent callers for the same key share one in-flight computation.
        Nothing is written when the computation raises or is cancelled.
        """

        cached = await self.get(key)
        if cached is not None:
            return cached

        async with self._inflight_lock:
            pending = self._inflight.get(key)
            if pending is None:
                future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
                future.add_done_callback(_consume_exception)
                self._inflight[key] = future
        if pending is not None:
            return await asyncio.shield(pending)

        started = self._stamp
        self._computing += 1
        try:
            value = await compute()
            if value is not None:
                if self._invalidated_since(key, started):
                    logger.debug("Discarding result for %s computed before invalidation", key)
                else:
                    await self.set(key, value, ttl_for(value))
        except BaseException as exc:
            if isinstance(exc, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(exc)
            raise
        else:
            future.set_result(value)
            return value
        finally:
            self._computing -= 1
            if not self._computing:
                self._invalidated_at.clear()
            async with self._inflight_lock:
                if self._inflight.get(key) is future:
                    del self._inflight[key]


def _consume_exception(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()


__all__ = [
    "CacheBackend",
    "CacheEntry",
    "InMemoryCache",
    "ResultCache",
    "identity_prefix",
    "result_key",
    "select_ttl",
    "summary_key",
    "user_prefix",
]
