"""
In-memory caching for MyGo supplier responses.

Entries are keyed by data type plus a hash of the logical request, so two
identical searches share one entry. Values carrying a search token are
refused: the token must never outlive the request that produced it.
"""

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from mygo_mcp.clients.mygo_client import contains_search_token

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cache entry with metadata."""

    key: str
    data_type: str
    value: Any
    created_at: datetime
    expires_at: datetime
    access_count: int = 0
    last_accessed: datetime | None = None
    size_bytes: int = 0
    allow_stale: bool = False


@dataclass(frozen=True)
class CacheConfig:
    """Retention rules for one data type."""

    ttl_seconds: int
    max_entries: int
    allow_stale: bool = False


class SupplierCacheManager:
    """
    Caching manager for MyGo supplier responses.

    Features:
    - TTL and entry limit per data type
    - Deterministic, token-free cache keys
    - Stale reads for catalogue data when the supplier is unreachable
    - Performance monitoring
    """

    CACHE_CONFIGS = {
        # MyGo city data rarely changes; one entry holds the whole list
        "cities": CacheConfig(ttl_seconds=600, max_entries=1, allow_stale=True),
        # One entry per city
        "hotels": CacheConfig(ttl_seconds=3600, max_entries=500, allow_stale=True),
        # Countries, categories, boardings, tags, languages, currencies
        "static_lists": CacheConfig(
            ttl_seconds=14400, max_entries=6, allow_stale=True
        ),
        # Availability and prices move quickly
        "hotel_search": CacheConfig(ttl_seconds=300, max_entries=1000),
    }

    DEFAULT_CONFIG = CacheConfig(ttl_seconds=600, max_entries=100)

    def __init__(
        self,
        namespace: str = "mygo",
        enable_monitoring: bool = True,
        max_memory_size: int = 10000,
        ttl_overrides: dict[str, int] | None = None,
    ):
        """
        Initialize cache manager.

        Args:
            namespace: Prefix isolating this cache's keys
            enable_monitoring: Enable cache performance monitoring
            max_memory_size: Maximum number of entries in memory cache
            ttl_overrides: Per data type TTL replacing the defaults
        """
        self.namespace = namespace
        self.enable_monitoring = enable_monitoring
        self.max_memory_size = max_memory_size
        self.ttl_overrides = dict(ttl_overrides or {})

        self._memory_cache: dict[str, CacheEntry] = {}

        self._stats = (
            {
                "hits": 0,
                "misses": 0,
                "stale_hits": 0,
                "evictions": 0,
                "invalidations": 0,
                "size_bytes": 0,
            }
            if enable_monitoring
            else None
        )

        self._cleanup_task: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()

        logger.info(
            "Cache manager initialized",
            extra={
                "namespace": namespace,
                "monitoring_enabled": enable_monitoring,
                "max_memory_size": max_memory_size,
            },
        )

    def generate_cache_key(
        self, data_type: str, identifier: str, params: dict[str, Any] | None = None
    ) -> str:
        """
        Generate a consistent cache key.

        Args:
            data_type: Type of data being cached
            identifier: Identifier for the data within its type
            params: Logical request parameters; order-insensitive

        Returns:
            Key of the form ``namespace:data_type:identifier[:hash]``

        Raises:
            ValueError: If the key parts or params reference a search token
        """
        if contains_search_token(params) or "token" in f"{data_type}{identifier}".lower():
            raise ValueError("Cache keys must not be derived from search tokens")

        key_parts = [self.namespace, data_type, identifier]

        if params:
            param_str = json.dumps(params, sort_keys=True, default=str)
            param_hash = hashlib.sha256(param_str.encode()).hexdigest()[:16]
            key_parts.append(param_hash)

        return ":".join(key_parts)

    def _config_for(self, data_type: str) -> CacheConfig:
        return self.CACHE_CONFIGS.get(data_type, self.DEFAULT_CONFIG)

    def _ttl_for(self, data_type: str, ttl_override: int | None) -> int:
        if ttl_override is not None:
            return ttl_override
        if data_type in self.ttl_overrides:
            return self.ttl_overrides[data_type]
        return self._config_for(data_type).ttl_seconds

    def _calculate_size(self, value: Any) -> int:
        """Calculate approximate size of cached value in bytes."""
        if isinstance(value, str):
            return len(value.encode("utf-8"))
        return len(json.dumps(value, default=str).encode("utf-8"))

    async def get(
        self,
        data_type: str,
        identifier: str,
        params: dict[str, Any] | None = None,
        default: Any = None,
    ) -> Any:
        """
        Get a fresh value from cache.

        Expired entries of stale-capable types are kept for get_stale().
        """
        cache_key = self.generate_cache_key(data_type, identifier, params)
        entry = self._memory_cache.get(cache_key)

        if entry is not None:
            now = datetime.utcnow()
            if entry.expires_at > now:
                entry.access_count += 1
                entry.last_accessed = now

                if self._stats:
                    self._stats["hits"] += 1

                logger.debug(
                    "Cache hit",
                    extra={
                        "cache_key": cache_key,
                        "data_type": data_type,
                        "access_count": entry.access_count,
                    },
                )
                return entry.value

            if not entry.allow_stale:
                await self._remove_entry(cache_key, "expired")

        if self._stats:
            self._stats["misses"] += 1

        logger.debug(
            "Cache miss", extra={"cache_key": cache_key, "data_type": data_type}
        )

        return default

    async def get_stale(
        self,
        data_type: str,
        identifier: str,
        params: dict[str, Any] | None = None,
        default: Any = None,
    ) -> Any:
        """Get a value regardless of expiry, for fallback when the supplier fails."""
        cache_key = self.generate_cache_key(data_type, identifier, params)
        entry = self._memory_cache.get(cache_key)

        if entry is None:
            return default

        if self._stats:
            self._stats["stale_hits"] += 1

        logger.debug(
            "Cache stale read",
            extra={
                "cache_key": cache_key,
                "data_type": data_type,
                "expired": entry.expires_at <= datetime.utcnow(),
            },
        )
        return entry.value

    async def set(
        self,
        data_type: str,
        identifier: str,
        value: Any,
        params: dict[str, Any] | None = None,
        ttl_override: int | None = None,
    ) -> bool:
        """
        Set value in cache.

        Args:
            data_type: Type of data
            identifier: Data identifier
            value: JSON-ready value to cache
            params: Logical request parameters
            ttl_override: Override default TTL

        Returns:
            True if successfully cached

        Raises:
            ValueError: If the value carries a search token
        """
        if contains_search_token(value):
            raise ValueError("Refusing to cache a value carrying a search token")

        cache_key = self.generate_cache_key(data_type, identifier, params)
        config = self._config_for(data_type)

        ttl = self._ttl_for(data_type, ttl_override)
        now = datetime.utcnow()
        size_bytes = self._calculate_size(value)

        entry = CacheEntry(
            key=cache_key,
            data_type=data_type,
            value=value,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
            size_bytes=size_bytes,
            allow_stale=config.allow_stale,
        )

        if cache_key in self._memory_cache:
            await self._remove_entry(cache_key, "replaced")
        await self._ensure_capacity(data_type, config)

        self._memory_cache[cache_key] = entry

        if self._stats:
            self._stats["size_bytes"] += size_bytes

        logger.debug(
            "Cache set",
            extra={
                "cache_key": cache_key,
                "data_type": data_type,
                "ttl_seconds": ttl,
                "size_bytes": size_bytes,
            },
        )

        return True

    async def invalidate(self, data_type: str) -> int:
        """
        Drop every entry of a data type, stale-capable ones included.

        Returns:
            Number of entries invalidated
        """
        keys_to_remove = [
            cache_key
            for cache_key, entry in self._memory_cache.items()
            if entry.data_type == data_type
        ]

        for cache_key in keys_to_remove:
            await self._remove_entry(cache_key, "invalidated")

        if self._stats:
            self._stats["invalidations"] += len(keys_to_remove)

        logger.info(
            "Cache invalidation completed",
            extra={"invalidated_count": len(keys_to_remove), "data_type": data_type},
        )

        return len(keys_to_remove)

    async def _remove_entry(self, cache_key: str, reason: str) -> None:
        """Remove cache entry and update statistics."""
        entry = self._memory_cache.pop(cache_key, None)
        if entry is None or not self._stats:
            return

        self._stats["size_bytes"] -= entry.size_bytes
        if reason == "evicted":
            self._stats["evictions"] += 1

    async def _ensure_capacity(self, data_type: str, config: CacheConfig) -> None:
        """Make room for one more entry of data_type within both limits."""
        same_type = [
            entry for entry in self._memory_cache.values() if entry.data_type == data_type
        ]
        if len(same_type) >= config.max_entries:
            await self._evict(same_type, len(same_type) - config.max_entries + 1)

        if len(self._memory_cache) >= self.max_memory_size:
            await self._evict(
                list(self._memory_cache.values()),
                len(self._memory_cache) - self.max_memory_size // 2,
            )

    async def _evict(self, entries: list[CacheEntry], count: int) -> None:
        """Evict count entries: expired first, then least recently used."""
        now = datetime.utcnow()
        ranked = sorted(
            entries,
            key=lambda entry: (
                entry.expires_at > now,
                entry.last_accessed or entry.created_at,
            ),
        )
        for entry in ranked[:count]:
            await self._remove_entry(entry.key, "evicted")

    async def cleanup_expired(self) -> int:
        """Remove expired entries that cannot serve stale reads."""
        now = datetime.utcnow()
        expired_keys = [
            cache_key
            for cache_key, entry in self._memory_cache.items()
            if entry.expires_at <= now and not entry.allow_stale
        ]

        for cache_key in expired_keys:
            await self._remove_entry(cache_key, "expired")

        return len(expired_keys)

    def get_stats(self) -> dict[str, Any] | None:
        """Get cache statistics."""
        if not self._stats:
            return None

        total_requests = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total_requests) if total_requests > 0 else 0.0

        return {
            **self._stats,
            "entries_count": len(self._memory_cache),
            "hit_rate": hit_rate,
            "namespace": self.namespace,
        }

    async def health_check(self) -> dict[str, Any]:
        """Perform cache health check."""
        stats = self.get_stats() or {}
        now = datetime.utcnow()
        expired_count = sum(
            1 for entry in self._memory_cache.values() if entry.expires_at <= now
        )
        entries_count = len(self._memory_cache)

        status = "healthy"
        if entries_count > self.max_memory_size * 0.9:
            status = "near_capacity"
        elif entries_count and expired_count > entries_count * 0.5:
            status = "many_expired"

        return {
            "status": status,
            "stats": stats,
            "expired_entries": expired_count,
            "capacity_usage": entries_count / self.max_memory_size,
        }

    async def start_background_tasks(self) -> None:
        """Start background maintenance tasks."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._background_cleanup())

    async def _background_cleanup(self) -> None:
        """Background task for cache cleanup."""
        logger.info("Started cache background cleanup task")

        while not self._shutdown_event.is_set():
            try:
                # Cleanup expired entries every 5 minutes
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=300.0)
            except asyncio.TimeoutError:
                expired_count = await self.cleanup_expired()
                if expired_count > 0:
                    logger.debug(f"Cleaned up {expired_count} expired cache entries")

        logger.info("Cache background cleanup task stopped")

    async def close(self) -> None:
        """Clean up cache manager."""
        logger.info("Closing cache manager")

        self._shutdown_event.set()
        if self._cleanup_task:
            try:
                await asyncio.wait_for(self._cleanup_task, timeout=5.0)
            except asyncio.TimeoutError:
                self._cleanup_task.cancel()
            self._cleanup_task = None

        self._memory_cache.clear()

        logger.info("Cache manager closed")
