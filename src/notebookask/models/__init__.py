from __future__ import annotations

from notebookask.models.auth import AuthInfo, Credentials
from notebookask.models.cache import (
    CacheCounters,
    CacheEntry,
    CacheStats,
    PersistedCacheState,
    cache_key,
    normalize_question,
)
from notebookask.models.query import QueryMetrics, QueryOptions, QueryResult
from notebookask.models.session import PoolStats, SessionStats

__all__ = [
    # auth
    "Credentials",
    "AuthInfo",
    # cache
    "CacheEntry",
    "CacheCounters",
    "CacheStats",
    "PersistedCacheState",
    "cache_key",
    "normalize_question",
    # query
    "QueryOptions",
    "QueryResult",
    "QueryMetrics",
    # session
    "SessionStats",
    "PoolStats",
]
