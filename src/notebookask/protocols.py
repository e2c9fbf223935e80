"""Protocol interfaces for swappable components.

The orchestrator and AppState reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight in-memory fakes instead of a real browser
- Other persistence backends to be swapped without changing query code
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page

    from notebookask.models.auth import AuthInfo, Credentials
    from notebookask.models.cache import CacheEntry, CacheStats
    from notebookask.models.query import QueryMetrics
    from notebookask.models.session import SessionStats


class BrowserHandleProtocol(Protocol):
    """A launched browser context that must be closed when done."""

    @property
    def context(self) -> BrowserContext: ...

    async def close(self) -> None: ...


class BrowserLauncher(Protocol):
    """Starts a browser and returns a handle with one authenticated context."""

    async def __call__(self, *, headless: bool) -> BrowserHandleProtocol: ...


class CacheProtocol(Protocol):
    """Interface for the response cache."""

    async def get(self, question: str, notebook_url: str) -> str | None: ...

    async def set(self, question: str, answer: str, notebook_url: str) -> None: ...

    async def invalidate(
        self, question: str | None = None, notebook_url: str | None = None
    ) -> int: ...

    async def cleanup_expired(self) -> int: ...

    async def stats(self) -> CacheStats: ...

    async def entries(self, limit: int | None = None) -> list[CacheEntry]: ...

    async def save(self) -> None: ...


class CredentialStoreProtocol(Protocol):
    """Interface for persisted browser authentication state."""

    def load(self) -> Credentials | None: ...

    def save(self, credentials: Credentials) -> None: ...

    def exists(self) -> bool: ...

    def info(self) -> AuthInfo: ...

    def clear(self) -> bool: ...


class SessionProtocol(Protocol):
    """What the pool and orchestrator need from a pooled session."""

    id: str
    notebook_url: str
    headless: bool

    async def get_page(self) -> Page: ...

    async def validate_auth(self) -> bool: ...

    async def reset_if_needed(self, notebook_url: str) -> bool: ...

    def is_expired(self) -> bool: ...

    async def close(self) -> None: ...

    def stats(self) -> SessionStats: ...


class HistoryProtocol(Protocol):
    """Per-query metrics records: written by the orchestrator, read by the history tools."""

    async def record(self, metrics: QueryMetrics) -> None: ...

    async def list_recent(self, limit: int = 20) -> list[QueryMetrics]: ...

    async def search(self, text: str, limit: int = 20) -> list[QueryMetrics]: ...

    async def clear(self) -> int: ...
