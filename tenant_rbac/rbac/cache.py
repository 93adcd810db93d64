"""
In-process caches for role permissions and built user contexts.

Background:
    Every request needs the permission set of every role the caller holds.
    Those sets change rarely, so we keep them in memory keyed by role id.
    The cache is read-through only: on a miss the caller queries the
    authoritative store and repopulates. The cache never invents a result.

    Writes to roles/grants must invalidate synchronously. To stop a slow
    reader from re-inserting data it fetched *before* an invalidation, each
    key carries a generation number: take ``generation(key)`` before reading
    the store, pass it back to ``set(..., generation=...)``, and the write is
    dropped if the key was invalidated in between.

Both caches are safe for concurrent readers and writers; all state lives
behind one lock per cache instance, so a completed ``invalidate()`` is
visible to every later ``get()``.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass
import logging
import threading
import time
from typing import Generic, TypeVar

from .context import UserContext
from .permissions import ParsedPermission

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

PermissionSet = frozenset[ParsedPermission]
ContextKey = tuple[str, "str | None"]


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    hit_rate: float
    size: int

    def to_dict(self) -> dict[str, object]:
        return {"hits": self.hits, "misses": self.misses, "hit_rate": self.hit_rate, "size": self.size}


@dataclass(frozen=True)
class CacheHealth:
    """Operational signal only; never an error for the caller."""

    name: str
    stats: CacheStats
    low_hit_rate: bool
    oversized: bool

    @property
    def healthy(self) -> bool:
        return not (self.low_hit_rate or self.oversized)


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[K, V]):
    """Lock-guarded TTL map with hit/miss accounting and per-key generations."""

    def __init__(
        self,
        *,
        name: str,
        ttl_seconds: float,
        max_entries: int = 10_000,
        low_hit_rate: float = 0.5,
        min_lookups_for_health: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._low_hit_rate = low_hit_rate
        self._min_lookups = min_lookups_for_health
        self._clock = clock

        self._lock = threading.RLock()
        self._entries: dict[K, _Entry[V]] = {}
        self._generations: dict[K, int] = {}
        self._epoch = 0
        self._hits = 0
        self._misses = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    # ---- Read path ------------------------------------------------------------------

    def get(self, key: K) -> V | None:
        """Return the cached value, or None on miss/expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def generation(self, key: K) -> tuple:
        """Token to pass to ``set`` so fills racing an invalidation are dropped."""
        with self._lock:
            return self._generation_locked(key)

    def _generation_locked(self, key: K) -> tuple:
        return (self._epoch, self._generations.get(key, 0))

    # ---- Write path -----------------------------------------------------------------

    def set(self, key: K, value: V, ttl: float | None = None, generation: tuple | None = None) -> bool:
        """
        Store ``value``; last write wins.

        Returns False (and stores nothing) when ``generation`` is stale.
        """
        with self._lock:
            if generation is not None and generation != self._generation_locked(key):
                logger.debug("cache=%s dropped stale fill key=%s", self.name, key)
                return False
            expires_at = self._clock() + (self._ttl if ttl is None else ttl)
            self._entries[key] = _Entry(value=value, expires_at=expires_at)
            if len(self._entries) > self._max_entries:
                self._purge_expired_locked()
            return True

    def invalidate(self, key: K) -> bool:
        """Drop one key. Idempotent: the next ``get`` is a miss either way."""
        with self._lock:
            self._generations[key] = self._generations.get(key, 0) + 1
            removed = self._entries.pop(key, None) is not None
        logger.debug("cache=%s invalidated key=%s removed=%s", self.name, key, removed)
        return removed

    def invalidate_where(self, predicate: Callable[[K, V], bool]) -> int:
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if predicate(key, entry.value)]
            for key in doomed:
                self._generations[key] = self._generations.get(key, 0) + 1
                del self._entries[key]
        return len(doomed)

    def invalidate_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._generations.clear()
            self._epoch += 1
        logger.info("cache=%s invalidated all entries count=%d", self.name, count)
        return count

    def _purge_expired_locked(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if e.expires_at <= now]:
            del self._entries[key]

    # ---- Accounting -----------------------------------------------------------------

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> CacheStats:
        with self._lock:
            lookups = self._hits + self._misses
            hit_rate = (self._hits / lookups) if lookups else 0.0
            return CacheStats(hits=self._hits, misses=self._misses, hit_rate=hit_rate, size=len(self._entries))

    def health(self) -> CacheHealth:
        stats = self.stats()
        lookups = stats.hits + stats.misses
        return CacheHealth(
            name=self.name,
            stats=stats,
            low_hit_rate=lookups >= self._min_lookups and stats.hit_rate < self._low_hit_rate,
            oversized=stats.size > self._max_entries,
        )

    def report_health(self) -> CacheHealth:
        """Log unhealthy conditions for monitoring and return the snapshot."""
        health = self.health()
        if health.low_hit_rate:
            logger.warning(
                "cache=%s hit rate below low-water mark hit_rate=%.2f threshold=%.2f",
                self.name,
                health.stats.hit_rate,
                self._low_hit_rate,
            )
        if health.oversized:
            logger.warning(
                "cache=%s size above high-water mark size=%d max=%d",
                self.name,
                health.stats.size,
                self._max_entries,
            )
        return health


class RolePermissionCache(TTLCache[str, PermissionSet]):
    """role_id -> permission set."""

    def __init__(self, ttl_seconds: float = 300, **kwargs) -> None:
        super().__init__(name="role_permissions", ttl_seconds=ttl_seconds, **kwargs)


class UserContextCache(TTLCache[ContextKey, UserContext]):
    """(user_id, current_organization_id) -> built UserContext."""

    def __init__(self, ttl_seconds: float = 60, **kwargs) -> None:
        super().__init__(name="user_contexts", ttl_seconds=ttl_seconds, **kwargs)
        self._user_generations: dict[str, int] = {}
        # Contexts being built cannot be matched to a role before they exist,
        # so any role invalidation drops every in-flight fill.
        self._role_epoch = 0

    def _generation_locked(self, key: ContextKey) -> tuple:
        return (*super()._generation_locked(key), self._user_generations.get(key[0], 0), self._role_epoch)

    def invalidate_user(self, user_id: str) -> int:
        with self._lock:
            self._user_generations[user_id] = self._user_generations.get(user_id, 0) + 1
            return self.invalidate_where(lambda key, _ctx: key[0] == user_id)

    def invalidate_role(self, role_id: str) -> int:
        with self._lock:
            self._role_epoch += 1
            return self.invalidate_where(lambda _key, ctx: role_id in ctx.role_ids)
