"""Application state container.

AppState is built once per process (inside the FastMCP lifespan, or lazily
via ``get_state()`` for library use) and injected into the orchestrator and
every tool handler. It owns the process-wide response cache and session pool:
anything needing them receives this object instead of reaching for globals.
``reset_state()`` tears the shared instance down for test isolation.
"""

from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from notebookask.browser import launch_context
from notebookask.cache import ResponseCache
from notebookask.config import Settings
from notebookask.credentials import CredentialStore
from notebookask.history import QueryHistory
from notebookask.lifecycle import ShutdownHooks
from notebookask.orchestrator import QueryOrchestrator
from notebookask.pool import SessionPool

if TYPE_CHECKING:
    from notebookask.protocols import (
        BrowserLauncher,
        CacheProtocol,
        CredentialStoreProtocol,
        HistoryProtocol,
    )

log = structlog.get_logger()


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every tool handler."""

    settings: Settings
    credentials: CredentialStoreProtocol
    launcher: BrowserLauncher
    pool: SessionPool
    cache: CacheProtocol | None = None
    history: HistoryProtocol | None = None
    history_db: aiosqlite.Connection | None = None
    shutdown: ShutdownHooks = field(default_factory=ShutdownHooks)
    orchestrator: QueryOrchestrator | None = None

    def get_orchestrator(self) -> QueryOrchestrator:
        if self.orchestrator is None:
            self.orchestrator = QueryOrchestrator(self)
        return self.orchestrator


async def build_state(settings: Settings) -> AppState:
    """Construct every shared component and register their shutdown hooks."""
    credentials = CredentialStore(
        Path(settings.auth.state_path).expanduser(),
        encryption_key=(
            settings.auth.encryption_key.get_secret_value()
            if settings.auth.encryption_key is not None
            else None
        ),
        stale_after_days=settings.auth.stale_after_days,
    )
    launcher = functools.partial(launch_context, settings, credentials)
    pool = SessionPool.for_settings(settings, launcher)

    cache: ResponseCache | None = None
    if settings.cache.enabled:
        cache = ResponseCache(
            Path(settings.cache.path).expanduser(),
            max_size=settings.cache.max_size,
            ttl_seconds=settings.cache.ttl_seconds,
            auto_save_every=settings.cache.auto_save_every,
        )
        await cache.load()

    history: QueryHistory | None = None
    db: aiosqlite.Connection | None = None
    if settings.history.enabled:
        db_path = Path(settings.history.db_path).expanduser()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(db_path))
        history = QueryHistory(db)
        await history.init_db()

    state = AppState(
        settings=settings,
        credentials=credentials,
        launcher=launcher,
        pool=pool,
        cache=cache,
        history=history,
        history_db=db,
    )

    # Sessions first: they hold browser processes.
    state.shutdown.register("close_sessions", pool.close_all)
    if cache is not None:
        state.shutdown.register("save_cache", cache.save)
    if db is not None:
        state.shutdown.register("close_history_db", db.close)

    log.info(
        "state_built",
        cache_enabled=cache is not None,
        history_enabled=history is not None,
        max_parallel=settings.query.max_parallel,
    )
    return state


_state: AppState | None = None
_state_lock = asyncio.Lock()


async def get_state(settings: Settings | None = None) -> AppState:
    """Return the process-wide AppState, building it on first use."""
    global _state
    async with _state_lock:
        if _state is None:
            _state = await build_state(settings or Settings())
        return _state


def set_state(state: AppState | None) -> None:
    """Install *state* as the process-wide instance (the server lifespan does this)."""
    global _state
    _state = state


async def reset_state() -> None:
    """Run the shared state's shutdown hooks and forget it."""
    global _state
    async with _state_lock:
        state, _state = _state, None
    if state is not None:
        await state.shutdown.run()
