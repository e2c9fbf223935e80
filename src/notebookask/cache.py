"""In-memory LRU response cache with TTL and periodic JSON persistence.

Entries live in an ``OrderedDict`` whose order is the recency order: the first
item is the least recently used, the last item the most recently used.

Persistence failures are logged and ignored. A broken cache file must never
prevent the caller from receiving an answer, so file I/O errors never cross
the ResponseCache boundary. Errors are logged with ``exc_info=True`` so they
remain observable via stderr.
"""

from __future__ import annotations

import asyncio
import os
from collections import OrderedDict
from datetime import UTC, datetime
from pathlib import Path

import structlog
from pydantic import ValidationError as PydanticValidationError

from notebookask.models.cache import (
    CacheCounters,
    CacheEntry,
    CacheStats,
    PersistedCacheState,
    cache_key,
    normalize_question,
)

log = structlog.get_logger()

DEFAULT_MAX_SIZE = 100
DEFAULT_TTL_SECONDS = 86400
AUTO_SAVE_EVERY = 5


class ResponseCache:
    """LRU/TTL cache of answers keyed by normalized question + notebook URL.

    ``path=None`` gives a memory-only cache (used by tests and when
    persistence is not wanted).
    """

    def __init__(
        self,
        path: Path | None = None,
        *,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        auto_save_every: int = AUTO_SAVE_EVERY,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._path = path
        self._max_size = max_size
        self._ttl_seconds = ttl_seconds
        self._auto_save_every = max(1, auto_save_every)

        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._counters = CacheCounters()
        self._writes_since_save = 0
        self._loaded = False
        self._load_lock = asyncio.Lock()

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Load persisted entries once. Later calls are no-ops."""
        async with self._load_lock:
            if self._loaded:
                return
            await self._load_from_disk()
            self._loaded = True

    async def _load_from_disk(self) -> None:
        if self._path is None:
            return
        try:
            raw = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
        except FileNotFoundError:
            log.debug("cache_file_missing", path=str(self._path))
            return
        except OSError:
            log.warning("cache_load_error", path=str(self._path), exc_info=True)
            return

        try:
            state = PersistedCacheState.model_validate_json(raw)
        except PydanticValidationError:
            log.warning("cache_file_invalid", path=str(self._path), exc_info=True)
            return

        now = datetime.now(UTC)
        dropped = 0
        for entry in state.entries.values():
            # Expired entries vanish silently: not a miss, not an eviction.
            if entry.is_expired(self._ttl_seconds, now):
                dropped += 1
                continue
            # Rekeyed so a file written under an older key scheme still hits.
            key = cache_key(entry.question, entry.notebook_url)
            self._entries[key] = entry.model_copy(update={"normalized_key": key})

        # A smaller configured capacity than the file was written with.
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

        self._counters = state.stats.model_copy()
        log.info(
            "cache_loaded",
            path=str(self._path),
            entries=len(self._entries),
            expired_dropped=dropped,
        )

    # ------------------------------------------------------------------
    # Lookup and storage
    # ------------------------------------------------------------------

    async def get(self, question: str, notebook_url: str) -> str | None:
        """Return the cached answer, or ``None`` on miss or expiry."""
        await self.load()

        self._counters.total_queries += 1
        key = cache_key(question, notebook_url)

        entry = self._entries.get(key)
        if entry is None:
            self._counters.misses += 1
            return None

        if entry.is_expired(self._ttl_seconds):
            del self._entries[key]
            self._counters.misses += 1
            log.debug("cache_entry_expired", key=key)
            return None

        entry.hit_count += 1
        self._entries.move_to_end(key)
        self._counters.hits += 1
        return entry.answer

    async def set(self, question: str, answer: str, notebook_url: str) -> None:
        """Store an answer, evicting the least recently used entry for a new key at capacity."""
        await self.load()

        key = cache_key(question, notebook_url)

        if key not in self._entries and len(self._entries) >= self._max_size:
            evicted_key, _ = self._entries.popitem(last=False)
            self._counters.evictions += 1
            log.debug("cache_evicted", key=evicted_key)

        self._entries[key] = CacheEntry(
            question=question,
            normalized_key=key,
            answer=answer,
            notebook_url=notebook_url,
        )
        self._entries.move_to_end(key)

        self._writes_since_save += 1
        if self._writes_since_save % self._auto_save_every == 0:
            await self._persist()

    async def invalidate(
        self,
        question: str | None = None,
        notebook_url: str | None = None,
    ) -> int:
        """Remove entries and return how many were removed.

        No filters clears the cache. With filters, an entry is removed only if
        it matches every filter given: the question compares in normalized
        form, the notebook URL compares exactly.
        """
        await self.load()

        if not question and not notebook_url:
            count = len(self._entries)
            self._entries.clear()
            await self._persist()
            log.info("cache_cleared", removed=count)
            return count

        wanted_question = normalize_question(question) if question else None
        to_remove = [
            key
            for key, entry in self._entries.items()
            if (wanted_question is None or normalize_question(entry.question) == wanted_question)
            and (not notebook_url or entry.notebook_url == notebook_url)
        ]
        for key in to_remove:
            del self._entries[key]

        if to_remove:
            await self._persist()
        log.info("cache_invalidated", removed=len(to_remove))
        return len(to_remove)

    async def cleanup_expired(self) -> int:
        """Drop every entry older than the TTL. Returns the number removed."""
        await self.load()

        now = datetime.now(UTC)
        expired = [
            key for key, entry in self._entries.items() if entry.is_expired(self._ttl_seconds, now)
        ]
        for key in expired:
            del self._entries[key]

        if expired:
            await self._persist()
        log.info("cache_cleanup_complete", removed=len(expired))
        return len(expired)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    async def stats(self) -> CacheStats:
        await self.load()
        total = self._counters.hits + self._counters.misses
        return CacheStats(
            **self._counters.model_dump(),
            hit_rate=self._counters.hits / total if total else 0.0,
            size=len(self._entries),
            max_size=self._max_size,
        )

    async def entries(self, limit: int | None = None) -> list[CacheEntry]:
        """Copies of the cached entries, newest first."""
        await self.load()
        ordered = sorted(self._entries.values(), key=lambda e: e.created_at, reverse=True)
        if limit is not None:
            ordered = ordered[:limit]
        return [entry.model_copy() for entry in ordered]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save(self) -> None:
        """Flush the cache to disk now."""
        await self._persist()

    async def _persist(self) -> None:
        if self._path is None:
            return
        state = PersistedCacheState(
            entries=dict(self._entries),
            stats=self._counters.model_copy(),
            saved_at=datetime.now(UTC),
        )
        payload = state.model_dump_json(indent=2)
        try:
            await asyncio.to_thread(_write_atomic, self._path, payload)
            self._writes_since_save = 0
            log.debug("cache_saved", path=str(self._path), entries=len(self._entries))
        except OSError:
            log.warning("cache_write_error", path=str(self._path), exc_info=True)


def _write_atomic(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    os.replace(tmp_path, path)
