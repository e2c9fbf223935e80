from __future__ import annotations

import hashlib
import json
from datetime import UTC, datetime

from pydantic import BaseModel, Field


def normalize_question(question: str) -> str:
    """Case- and surrounding-whitespace-insensitive form of a question."""
    return question.strip().lower()


def cache_key(question: str, notebook_url: str) -> str:
    """Deterministic key over the normalized question and the exact notebook URL."""
    # JSON keeps the two parts apart even when the URL contains the separator.
    key_data = json.dumps([normalize_question(question), notebook_url])
    return hashlib.md5(key_data.encode("utf-8")).hexdigest()


class CacheEntry(BaseModel):
    """A cached answer for one (question, notebook) pair."""

    question: str
    normalized_key: str
    answer: str
    notebook_url: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    hit_count: int = Field(default=0, ge=0)

    def is_expired(self, ttl_seconds: float, now: datetime | None = None) -> bool:
        now = now or datetime.now(UTC)
        return (now - self.created_at).total_seconds() > ttl_seconds

    def age_formatted(self, now: datetime | None = None) -> str:
        age = ((now or datetime.now(UTC)) - self.created_at).total_seconds()
        if age < 60:
            return f"{int(age)}s"
        if age < 3600:
            return f"{int(age // 60)}m"
        if age < 86400:
            return f"{int(age // 3600)}h"
        return f"{int(age // 86400)}d"


class CacheCounters(BaseModel):
    hits: int = Field(default=0, ge=0)
    misses: int = Field(default=0, ge=0)
    evictions: int = Field(default=0, ge=0)
    total_queries: int = Field(default=0, ge=0)


class CacheStats(CacheCounters):
    """Counters plus derived figures, as reported to callers."""

    hit_rate: float = 0.0
    size: int = 0
    max_size: int = 0


class PersistedCacheState(BaseModel):
    """On-disk document: ``{entries: {key -> entry}, stats, saved_at}``."""

    entries: dict[str, CacheEntry] = {}
    stats: CacheCounters = CacheCounters()
    saved_at: datetime
