"""
TTL Cache

Best-effort cache for rosters and eligibility verdicts, in two tiers:
- an in-process cachetools.TTLCache holding decoded entries
- a persistent KeyValueStore holding JSON {"value", "timestamp"} entries

Keys are namespaced by scope, ``{scope-type}:{scope-id}:{sub-resource}``,
so everything cached for one scope can be dropped with one prefix.

Caching never fails the caller: quota and parse problems degrade to a
cache miss and are only logged.
"""

import json
import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

import cachetools

from config.portal_settings import CACHE
from src.cache.storage import KeyValueStore, create_store
from src.utils.errors import CacheDegradationError, StorageQuotaExceededError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached value and the time it was written."""
    value: Any
    timestamp: float


def scope_namespace(key: str) -> str:
    """First two key segments: ``department:42:roster`` -> ``department:42``."""
    return ":".join(key.split(":")[:2])


class TTLCache:
    """Namespaced key/value cache with a fixed time-to-live."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        ttl: float | None = None,
        namespace: str | None = None,
        maxsize: int | None = None,
        timer: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize cache.

        Args:
            store: Persistent tier (defaults to the store CACHE["storage_path"] selects)
            ttl: Entry lifetime in seconds
            namespace: Prefix separating this cache's keys inside the store
            maxsize: Entries kept in the in-process tier
            timer: Clock in seconds; injectable for tests
        """
        self._store = store if store is not None else create_store()
        self.ttl = CACHE["ttl_seconds"] if ttl is None else ttl
        self._prefix = f"{namespace or CACHE['namespace']}:"
        self._timer = timer
        self._memory: cachetools.TTLCache = cachetools.TTLCache(
            maxsize=maxsize or CACHE["memory_maxsize"],
            ttl=self.ttl,
            timer=timer,
        )

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, key: str) -> Any | None:
        """Cached value, or None on miss or expiry."""
        entry = self._memory.get(key)
        if entry is None:
            entry = self._load(key)
            if entry is None:
                logger.debug("Cache miss: %s", key)
                return None

        if not self._is_fresh(entry):
            logger.debug("Cache entry expired: %s", key)
            self.invalidate(key)
            return None

        if key not in self._memory:
            self._memory[key] = entry
        logger.debug("Cache hit: %s", key)
        return entry.value

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._timer() - entry.timestamp < self.ttl

    def _load(self, key: str) -> CacheEntry | None:
        storage_key = self._prefix + key
        try:
            raw = self._store.get_item(storage_key)
        except (CacheDegradationError, OSError) as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        if raw is None:
            return None

        try:
            data = json.loads(raw)
            entry = CacheEntry(value=data["value"], timestamp=float(data["timestamp"]))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Dropping unreadable cache entry {key}: {e}")
            self._remove_stored(storage_key)
            return None
        return entry

    # =========================================================================
    # WRITES
    # =========================================================================

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serialisable value. Never raises on storage trouble."""
        entry = CacheEntry(value=value, timestamp=self._timer())
        try:
            payload = json.dumps({"value": value, "timestamp": entry.timestamp})
        except (TypeError, ValueError) as e:
            logger.warning(f"Not caching {key}: value is not serialisable ({e})")
            return

        self._memory[key] = entry
        storage_key = self._prefix + key
        try:
            self._store.set_item(storage_key, payload)
            return
        except StorageQuotaExceededError as e:
            logger.warning(f"Cache quota exceeded writing {key}: {e}")
        except (CacheDegradationError, OSError) as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return

        self._evict_largest_namespace()
        try:
            self._store.set_item(storage_key, payload)
        except (CacheDegradationError, OSError) as e:
            logger.warning(f"Giving up on persisting {key} after eviction: {e}")

    def _evict_largest_namespace(self) -> str | None:
        """Drop the namespace using the most bytes (oldest wins ties)."""
        sizes: dict[str, int] = defaultdict(int)
        oldest: dict[str, float] = {}
        for storage_key in self._own_storage_keys():
            raw = self._store.get_item(storage_key) or ""
            namespace = scope_namespace(storage_key[len(self._prefix):])
            sizes[namespace] += len(storage_key.encode("utf-8")) + len(raw.encode("utf-8"))
            oldest[namespace] = min(oldest.get(namespace, float("inf")), _stored_timestamp(raw))

        if not sizes:
            return None

        victim = max(sizes, key=lambda namespace: (sizes[namespace], -oldest[namespace]))
        removed = self._remove_where(lambda key: scope_namespace(key) == victim)
        logger.warning(
            "Evicted cache namespace %s (%d entries, %d bytes) to free storage",
            victim, removed, sizes[victim],
        )
        return victim

    # =========================================================================
    # INVALIDATION
    # =========================================================================

    def invalidate(self, key: str) -> None:
        self._memory.pop(key, None)
        self._remove_stored(self._prefix + key)

    def invalidate_by_prefix(self, prefix: str) -> int:
        """Remove every key starting with `prefix`. Returns how many were removed."""
        return self._remove_where(lambda key: key.startswith(prefix))

    def clear(self) -> None:
        self._remove_where(lambda key: True)
        self._memory.clear()

    def _remove_where(self, predicate: Callable[[str], bool]) -> int:
        removed: set[str] = set()
        for key in list(self._memory.keys()):
            if predicate(key):
                self._memory.pop(key, None)
                removed.add(key)
        for storage_key in self._own_storage_keys():
            key = storage_key[len(self._prefix):]
            if predicate(key):
                self._remove_stored(storage_key)
                removed.add(key)
        return len(removed)

    def _own_storage_keys(self) -> list[str]:
        try:
            return [key for key in self._store.keys() if key.startswith(self._prefix)]
        except (CacheDegradationError, OSError) as e:
            logger.warning(f"Cache key listing failed: {e}")
            return []

    def _remove_stored(self, storage_key: str) -> None:
        try:
            self._store.remove_item(storage_key)
        except (CacheDegradationError, OSError) as e:
            logger.warning(f"Cache removal failed for {storage_key}: {e}")


def _stored_timestamp(raw: str) -> float:
    try:
        return float(json.loads(raw)["timestamp"])
    except (ValueError, TypeError, KeyError):
        return 0.0
