"""
binder/core/cache.py
═══════════════════════════════════════════════════════════════════════════
Freshness-gated cache with single-flight fetches and stale-on-error fallback.

  get() resolution order:
    1. memory value younger than memory_ttl          → return, no I/O
    2. fetch already in flight                       → await the same task
    3. new fetch (recorded as in flight):
         a. persisted row younger than persistent_ttl → adopt it
         b. otherwise call upstream, persist, remember
         c. upstream failed → last known value (memory, then persisted row
            of any age) → fallback constant → NoDataAvailable

  • At most ONE upstream call per cache instance is ever outstanding
  • A failed fetch never clears a value that was already held
  • The in-flight marker is cleared in a finally block, on every exit path
  • invalidate() only drops the freshness timestamp, never the value

BulkFreshnessCache is the whole-collection variant used for the card
database: freshness is the oldest row's timestamp and a refresh swaps the
entire persisted collection in one transaction.
═══════════════════════════════════════════════════════════════════════════
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from binder.core.errors import (
    MalformedUpstreamPayload,
    NoDataAvailable,
    StorageError,
    UpstreamUnavailable,
)

log = logging.getLogger("cache")

T = TypeVar("T")

_MISSING: Any = object()


class Freshness(str, Enum):
    MEMORY    = "memory"      # served from process memory inside memory_ttl
    PERSISTED = "persisted"   # adopted from a persisted row inside persistent_ttl
    UPSTREAM  = "upstream"    # fetched just now
    STALE     = "stale"       # upstream failed, last known value served
    FALLBACK  = "fallback"    # upstream failed and nothing was known


class CacheState(str, Enum):
    IDLE      = "idle"
    FETCHING  = "fetching"
    POPULATED = "populated"


@dataclass
class Persisted(Generic[T]):
    """A row read back from the record store. updated_at is epoch seconds."""
    value:      T
    updated_at: float


@dataclass
class CacheResult(Generic[T]):
    value:      T
    freshness:  Freshness
    fetched_at: Optional[float] = None

    @property
    def is_stale(self) -> bool:
        return self.freshness in (Freshness.STALE, Freshness.FALLBACK)


class FreshnessCache(Generic[T]):
    """
    One cache instance wraps one upstream source and at most one persisted row.

    fetch_upstream  async () -> T, raises UpstreamUnavailable on failure
    load_persisted  async () -> Persisted[T] | None   (key bound by the caller)
    persist         async (T) -> None                 (upsert keyed by the caller)
    """

    def __init__(
        self,
        name:           str,
        fetch_upstream: Callable[[], Awaitable[T]],
        *,
        memory_ttl:     float,
        persistent_ttl: float = 0,
        load_persisted: Optional[Callable[[], Awaitable[Optional[Persisted[T]]]]] = None,
        persist:        Optional[Callable[[T], Awaitable[None]]] = None,
        fallback:       Any = _MISSING,
        key:            str = "",
        clock:          Callable[[], float] = time.time,
    ):
        self.name           = name
        self.key            = key
        self.memory_ttl     = memory_ttl
        self.persistent_ttl = persistent_ttl
        self._fetch_upstream = fetch_upstream
        self._load_persisted = load_persisted
        self._persist        = persist
        self._fallback       = fallback
        self._clock          = clock

        self._value:      Any = _MISSING
        self._fetched_at: Optional[float] = None
        self._stale       = False
        self._in_flight:  Optional[asyncio.Task] = None

    # ── Introspection ─────────────────────────────────────────────────────────

    @property
    def label(self) -> str:
        return f"{self.name}[{self.key}]" if self.key else self.name

    @property
    def state(self) -> CacheState:
        if self._in_flight is not None:
            return CacheState.FETCHING
        if self._value is not _MISSING:
            return CacheState.POPULATED
        return CacheState.IDLE

    def age(self) -> Optional[float]:
        """Seconds since the memory copy was last confirmed, or None."""
        if self._fetched_at is None:
            return None
        return round(self._clock() - self._fetched_at, 1)

    def summary(self) -> dict:
        """Metadata only, exposed by /api/health."""
        return {
            "state": self.state.value,
            "age_s": self.age(),
            "stale": self._stale,
        }

    # ── Public API ────────────────────────────────────────────────────────────

    async def get(self) -> T:
        return (await self.get_result()).value

    async def get_result(self) -> CacheResult[T]:
        if self._memory_fresh():
            return CacheResult(
                self._value,
                Freshness.STALE if self._stale else Freshness.MEMORY,
                self._fetched_at,
            )

        if self._in_flight is None:
            self._in_flight = asyncio.ensure_future(self._fill())
        else:
            log.debug(f"{self.label}: joining in-flight fetch")

        # shield: a cancelled waiter must not cancel the fetch the others share
        return await asyncio.shield(self._in_flight)

    def invalidate(self) -> None:
        """Force the next get() past the memory tier. Keeps the value."""
        self._fetched_at = None

    # ── Internals ─────────────────────────────────────────────────────────────

    def _memory_fresh(self) -> bool:
        if self._value is _MISSING or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self.memory_ttl

    def _remember(self, value: T, freshness: Freshness) -> CacheResult[T]:
        self._value      = value
        self._fetched_at = self._clock()
        self._stale      = freshness is Freshness.STALE
        return CacheResult(value, freshness, self._fetched_at)

    async def _fill(self) -> CacheResult[T]:
        try:
            row = await self._read_row()
            if row is not None and self._clock() - row.updated_at < self.persistent_ttl:
                log.info(f"{self.label}: persisted row is fresh — no upstream call")
                return self._remember(row.value, Freshness.PERSISTED)

            try:
                log.info(f"{self.label}: fetching from upstream...")
                fetched = await self._fetch_upstream()
                value   = await self._accept(fetched)
            except (UpstreamUnavailable, StorageError) as ex:
                log.error(f"{self.label}: refresh failed: {ex}")
                return self._degrade(row, ex)
            except Exception as ex:
                log.exception(f"{self.label}: unexpected error during refresh: {ex}")
                return self._degrade(row, MalformedUpstreamPayload(self.name, repr(ex)))

            return self._remember(value, Freshness.UPSTREAM)
        finally:
            self._in_flight = None

    async def _read_row(self) -> Optional[Persisted[T]]:
        if self._load_persisted is None:
            return None
        try:
            return await self._load_persisted()
        except StorageError as ex:
            log.error(f"{self.label}: could not read persisted row: {ex}")
            return None

    async def _accept(self, fetched: Any) -> T:
        """Persist a successful fetch and return the value to remember."""
        if self._persist is not None:
            try:
                await self._persist(fetched)
            except StorageError as ex:
                # memory copy is still good; the next process start refetches
                log.error(f"{self.label}: could not persist fresh value: {ex}")
        return fetched

    def _degrade(self, row: Optional[Persisted[T]], cause: Exception) -> CacheResult[T]:
        if self._value is not _MISSING:
            log.warning(f"{self.label}: serving last known value after failed refresh")
            return self._remember(self._value, Freshness.STALE)

        if row is not None:
            age_h = (self._clock() - row.updated_at) / 3600
            log.warning(f"{self.label}: serving stale persisted row ({age_h:.1f} h old)")
            return self._remember(row.value, Freshness.STALE)

        if self._fallback is not _MISSING:
            log.warning(f"{self.label}: nothing cached — using fallback value {self._fallback!r}")
            return CacheResult(self._fallback, Freshness.FALLBACK, None)

        raise NoDataAvailable(self.name, self.key) from cause


class BulkFreshnessCache(FreshnessCache[int]):
    """
    Whole-collection variant. The value held in memory is the row count;
    the rows themselves live only in the record store.

    fetch_upstream  async () -> list[dict]   complete snapshot
    load_persisted  async () -> Persisted[int] | None
                    (value = row count, updated_at = OLDEST row timestamp)
    persist         async (list[dict]) -> None
                    delete-all + batch insert inside one transaction
    """

    async def refresh(self) -> CacheResult[int]:
        """Bypass the memory tier; still honours the persisted-row TTL."""
        self.invalidate()
        return await self.get_result()

    async def _accept(self, fetched: Any) -> int:
        if not fetched:
            raise UpstreamUnavailable(self.name, "upstream returned an empty snapshot")
        if self._persist is not None:
            # a failed swap rolls back; the old collection stays intact
            await self._persist(fetched)
        return len(fetched)

    def _degrade(self, row: Optional[Persisted[int]], cause: Exception) -> CacheResult[int]:
        if row is not None and row.value > 0:
            age_d = (self._clock() - row.updated_at) / 86400
            log.warning(f"{self.label}: keeping stale collection ({row.value} rows, {age_d:.1f} days old)")
            return self._remember(row.value, Freshness.STALE)
        return super()._degrade(None, cause)
