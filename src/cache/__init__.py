"""
Cache Package

Best-effort TTL caching for rosters and eligibility verdicts.
"""
from src.cache.storage import JsonFileStore, KeyValueStore, MemoryStore, create_store
from src.cache.ttl_cache import CacheEntry, TTLCache, scope_namespace

__all__ = [
    # Storage
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "create_store",
    # Cache
    "CacheEntry",
    "TTLCache",
    "scope_namespace",
]
