"""TTL cache for full-graph reads.

Each storage adapter owns one GraphCache. Keys are
``graph:<database>:<graph_id>``; a key holds at most one value and is
overwritten on every store. Neighbor and impact results are never cached
because they depend on caller-supplied node ids and depths.
"""

import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from graphlens.common.logging import get_logger
from graphlens.common.metrics import GRAPH_CACHE_REQUESTS
from graphlens.schemas.graph import CacheClearResult, CacheStats, CacheStatus, GraphData

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 300


@dataclass
class CacheEntry:
    """A cached value with expiration time."""

    value: GraphData
    expires_at: float
    created_at: float = field(default_factory=time.time)

    def is_expired(self, now: float | None = None) -> bool:
        """Check if entry has expired."""
        now = now or time.time()
        return now >= self.expires_at


class GraphCache:
    """Per-adapter TTL cache with hit/miss/bypass accounting.

    Every read and write of the entry map happens under one lock, so a
    reader never observes a half-applied invalidate or set.

    Usage:
        cache = GraphCache(engine="neo4j", default_database="neo4j")
        data, status = await cache.read_through(None, "example", False, loader)
    """

    def __init__(
        self,
        engine: str,
        default_database: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        check_period: float = 60.0,
    ) -> None:
        """Initialize cache.

        Args:
            engine: Engine name, used as metrics label.
            default_database: Database substituted when a caller passes none.
            ttl_seconds: Entry lifetime. 0 disables caching.
            check_period: Seconds between expired-entry sweeps.
        """
        self.engine = engine
        self.default_database = default_database
        self.ttl_seconds = ttl_seconds
        self.check_period = check_period

        self._entries: dict[str, CacheEntry] = {}
        self._generations: dict[str, int] = {}
        self._lock = threading.Lock()
        self._last_cleanup = time.time()

        self._hits = 0
        self._misses = 0
        self._bypasses = 0

    def make_key(self, database: str | None, graph_id: str) -> str:
        """Build the cache key for a graph in a database."""
        return f"graph:{database or self.default_database}:{graph_id}"

    def get(self, key: str) -> GraphData | None:
        """Return the cached value, or None when absent or expired.

        Counts a hit or a miss.
        """
        now = time.time()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(now):
                del self._entries[key]
                entry = None

            if entry is None:
                self._misses += 1
                status = "MISS"
            else:
                self._hits += 1
                status = "HIT"

        GRAPH_CACHE_REQUESTS.labels(engine=self.engine, status=status).inc()
        return entry.value if entry is not None else None

    def generation(self, key: str) -> int:
        """Number of invalidations seen so far for a key."""
        with self._lock:
            return self._generations.get(key, 0)

    def set(self, key: str, value: GraphData, generation: int | None = None) -> None:
        """Store a value, replacing any previous value for the key.

        When ``generation`` is given and the key was invalidated since it
        was read, the value is stale and is not stored.
        """
        if self.ttl_seconds <= 0:
            return

        now = time.time()
        with self._lock:
            if generation is not None and self._generations.get(key, 0) != generation:
                return
            self._maybe_cleanup(now)
            self._entries[key] = CacheEntry(
                value=value,
                expires_at=now + self.ttl_seconds,
                created_at=now,
            )

    def record_bypass(self) -> None:
        """Count a read that skipped the cache on request."""
        with self._lock:
            self._bypasses += 1
        GRAPH_CACHE_REQUESTS.labels(engine=self.engine, status="BYPASS").inc()

    def invalidate(self, database: str | None, graph_id: str) -> str:
        """Drop the entry of one graph.

        Returns:
            The key that was invalidated (whether or not it was present).
        """
        key = self.make_key(database, graph_id)
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            self._generations[key] = self._generations.get(key, 0) + 1

        if removed:
            logger.debug("Cache entry invalidated", engine=self.engine, key=key)
        return key

    def invalidate_database(self, database: str) -> list[str]:
        """Drop every entry of a database, e.g. after the database is dropped."""
        prefix = f"graph:{database}:"
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            for key in set(keys) | {k for k in self._generations if k.startswith(prefix)}:
                self._generations[key] = self._generations.get(key, 0) + 1

        if keys:
            logger.debug("Cache entries invalidated", engine=self.engine, database=database, count=len(keys))
        return keys

    def clear(self, graph_id: str | None = None, database: str | None = None) -> CacheClearResult:
        """Invalidate one graph, or flush everything and reset counters."""
        if graph_id:
            return CacheClearResult(cleared=[self.invalidate(database, graph_id)])

        with self._lock:
            keys = list(self._entries)
            for key in keys:
                self._generations[key] = self._generations.get(key, 0) + 1
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._bypasses = 0

        logger.info("Cache flushed", engine=self.engine, cleared_count=len(keys))
        return CacheClearResult(cleared=keys)

    def has(self, key: str) -> bool:
        """Check for a live entry without touching the counters."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired()

    @property
    def stats(self) -> CacheStats:
        """Get cache statistics."""
        now = time.time()
        with self._lock:
            keys = [k for k, entry in self._entries.items() if not entry.is_expired(now)]
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                bypasses=self._bypasses,
                cached_graphs=len(keys),
                keys=keys,
                ttl_seconds=self.ttl_seconds,
            )

    async def read_through(
        self,
        database: str | None,
        graph_id: str,
        bypass_cache: bool,
        loader: Callable[[], Awaitable[GraphData]],
    ) -> tuple[GraphData, CacheStatus]:
        """Serve a full-graph read from the cache or from the loader.

        A bypassed read neither consults nor populates the cache.

        Args:
            database: Database name, None for the default.
            graph_id: Graph identifier.
            bypass_cache: Skip the cache entirely.
            loader: Coroutine factory performing the backend read.

        Returns:
            The graph data and the cache status of this read.
        """
        if bypass_cache:
            self.record_bypass()
            return await loader(), "BYPASS"

        key = self.make_key(database, graph_id)
        cached = self.get(key)
        if cached is not None:
            return cached, "HIT"

        generation = self.generation(key)
        data = await loader()
        self.set(key, data, generation=generation)
        return data, "MISS"

    def _maybe_cleanup(self, now: float) -> None:
        """Sweep expired entries when the check period has passed.

        Caller holds the lock.
        """
        if now - self._last_cleanup < self.check_period:
            return

        self._last_cleanup = now
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.debug(
                "Cache cleanup completed",
                engine=self.engine,
                expired_count=len(expired),
                remaining_count=len(self._entries),
            )
