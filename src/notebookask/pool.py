"""Keyed registry of warm notebook sessions.

One session per (notebook URL, headless) key. The map is only mutated at
synchronous points (insert, delete-then-replace, delete-on-close) so no two
coroutines ever observe it half-updated. A session is removed from the map
before its resources are released, so a crashed session is never handed out
again.

A page holds one conversation, so queries lease a session exclusively through
``lease()``; a second query on the same key waits for the first to finish.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog

from notebookask.models.session import PoolStats
from notebookask.session import NotebookSession

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from notebookask.config import Settings
    from notebookask.protocols import BrowserLauncher, SessionProtocol

    SessionFactory = Callable[[str, bool], SessionProtocol]

log = structlog.get_logger()

SessionKey = tuple[str, bool]


class SessionPool:
    """Creates sessions on demand, re-validates them on reuse, evicts idle ones."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory
        self._sessions: dict[SessionKey, SessionProtocol] = {}
        self._leases: dict[SessionKey, asyncio.Lock] = {}
        self.fallbacks = 0

    @classmethod
    def for_settings(cls, settings: Settings, launcher: BrowserLauncher) -> SessionPool:
        """Pool whose sessions launch real browsers via *launcher*."""

        def factory(notebook_url: str, headless: bool) -> NotebookSession:
            return NotebookSession(notebook_url, settings, launcher, headless=headless)

        return cls(factory)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    async def get_session(self, notebook_url: str, headless: bool = True) -> SessionProtocol:
        """Return a session pointed at *notebook_url*, creating or replacing as needed."""
        key: SessionKey = (notebook_url, headless)
        session = self._sessions.get(key)

        if session is None:
            log.debug("session_creating", notebook_url=notebook_url, headless=headless)
            session = self._session_factory(notebook_url, headless)
            self._sessions[key] = session
        else:
            log.debug("session_reusing", session_id=session.id)
            if not await session.validate_auth():
                log.warning("session_auth_invalid_recreating", session_id=session.id)
                # Drop from the map first: nobody else may pick up the stale session.
                if self._sessions.get(key) is session:
                    del self._sessions[key]
                await session.close()
                session = self._session_factory(notebook_url, headless)
                self._sessions[key] = session

        await session.reset_if_needed(notebook_url)
        return session

    @asynccontextmanager
    async def lease(
        self, notebook_url: str, headless: bool = True
    ) -> AsyncIterator[SessionProtocol]:
        """Hold the session for *notebook_url* exclusively until the block exits.

        Validation and retargeting run inside the lease, so they never move a
        page out from under a query that is still waiting for its answer.
        """
        key: SessionKey = (notebook_url, headless)
        lock = self._leases.setdefault(key, asyncio.Lock())
        if lock.locked():
            log.debug("session_lease_waiting", notebook_url=notebook_url, headless=headless)
        async with lock:
            yield await self.get_session(notebook_url, headless)

    def is_leased(self, key: SessionKey) -> bool:
        lock = self._leases.get(key)
        return lock is not None and lock.locked()

    async def discard(self, session: SessionProtocol) -> None:
        """Remove a specific session from the pool and close it."""
        for key, candidate in list(self._sessions.items()):
            if candidate is session:
                del self._sessions[key]
        await session.close()

    async def cleanup_expired(self) -> int:
        """Close and remove sessions idle beyond their timeout. Returns the count.

        A leased session is mid-query and never counts as idle.
        """
        expired = [
            (key, s)
            for key, s in self._sessions.items()
            if s.is_expired() and not self.is_leased(key)
        ]
        for key, _ in expired:
            del self._sessions[key]
            self._leases.pop(key, None)
        for _, session in expired:
            log.debug("session_expired", session_id=session.id)
            await session.close()

        if expired:
            log.info("sessions_cleaned_up", count=len(expired))
        return len(expired)

    async def close_all(self) -> None:
        """Close every session concurrently and empty the pool."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        log.info("sessions_closing_all", count=len(sessions))

        results = await asyncio.gather(
            *(session.close() for session in sessions), return_exceptions=True
        )
        for session, result in zip(sessions, results, strict=True):
            if isinstance(result, Exception):
                log.warning("session_close_error", session_id=session.id, error=str(result))

    def record_fallback(self) -> None:
        self.fallbacks += 1

    def stats(self) -> PoolStats:
        return PoolStats(
            active_sessions=len(self._sessions),
            fallbacks=self.fallbacks,
            sessions=[session.stats() for session in self._sessions.values()],
        )
