"""A warm browser session bound to one notebook URL.

Lifecycle: uninitialized → initializing → ready → (idle-expired) → closed.
Initialization is lazy and guarded by a single in-flight task, so concurrent
callers share one browser launch instead of racing to start their own.
A closed session is terminal; the pool replaces it rather than reopening it.
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from contextlib import suppress
from typing import TYPE_CHECKING

import structlog

from notebookask.browser import (
    configure_page,
    find_first_selector,
    is_auth_redirect,
    setup_resource_blocking,
)
from notebookask.errors import AuthExpiredError, BrowserError, NotebookAskError
from notebookask.models.session import SessionStats
from notebookask.selectors import QUERY_INPUT_SELECTORS

if TYPE_CHECKING:
    from playwright.async_api import Page

    from notebookask.config import Settings
    from notebookask.protocols import BrowserHandleProtocol, BrowserLauncher

log = structlog.get_logger()

_CLEAR_STORAGE_JS = "() => { window.localStorage.clear(); window.sessionStorage.clear(); }"


def session_id(notebook_url: str) -> str:
    """Short stable fingerprint of a notebook URL."""
    return hashlib.md5(notebook_url.encode("utf-8")).hexdigest()[:8]


class NotebookSession:
    """One browser context and page kept warm for a notebook."""

    def __init__(
        self,
        notebook_url: str,
        settings: Settings,
        launcher: BrowserLauncher,
        *,
        headless: bool = True,
    ) -> None:
        self.id = session_id(notebook_url)
        self.notebook_url = notebook_url
        self.headless = headless
        self.idle_timeout_seconds = settings.session.idle_timeout_minutes * 60

        self._settings = settings
        self._launcher = launcher
        self._handle: BrowserHandleProtocol | None = None
        self._page: Page | None = None
        self._initialized = False
        self._init_task: asyncio.Task[None] | None = None
        self._closed = False
        self._last_used = time.monotonic()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Launch the browser and open the notebook, once.

        Callers arriving while initialization is in flight await the same task.
        """
        if self._initialized:
            return
        if self._closed:
            raise BrowserError(f"Session {self.id} is closed")

        task = self._init_task
        if task is None:
            task = asyncio.create_task(self._do_initialize())
            self._init_task = task
        try:
            # Shielded so one cancelled caller does not abort the launch for the others.
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled() and self._closed:
                raise BrowserError(f"Session {self.id} closed during initialization") from None
            raise
        finally:
            if self._init_task is task and task.done():
                self._init_task = None

    async def _do_initialize(self) -> None:
        log.debug("session_initializing", session_id=self.id, notebook_url=self.notebook_url)
        try:
            self._handle = await self._launcher(headless=self.headless)
            page = await self._handle.context.new_page()
            configure_page(page, self._settings)
            if self._settings.browser.block_resources:
                await setup_resource_blocking(page)
            self._page = page

            await page.goto(self.notebook_url, wait_until="domcontentloaded")
            if is_auth_redirect(page.url, self._settings):
                raise AuthExpiredError("Redirected to login while opening the notebook")
            await self._wait_for_ready()
        except asyncio.CancelledError:
            await self._release()
            raise
        except Exception as exc:
            log.error("session_initialization_failed", session_id=self.id, error=str(exc))
            await self._release()
            if isinstance(exc, NotebookAskError):
                raise
            raise BrowserError(f"Failed to initialize session: {exc}") from exc

        self._initialized = True
        self._last_used = time.monotonic()
        log.info("session_initialized", session_id=self.id)

    async def _wait_for_ready(self) -> None:
        if self._page is None:
            raise BrowserError("Page not initialized")
        selector = await find_first_selector(
            self._page,
            QUERY_INPUT_SELECTORS,
            self._settings.session.ready_timeout_seconds,
        )
        if selector is None:
            raise BrowserError("Notebook not ready - query input not found")

    # ------------------------------------------------------------------
    # Use
    # ------------------------------------------------------------------

    async def get_page(self) -> Page:
        """Ensure the session is ready and return its live page."""
        if not self._initialized:
            await self.initialize()
        if self._page is None:
            raise BrowserError("Page not available")
        self._last_used = time.monotonic()
        return self._page

    async def validate_auth(self) -> bool:
        """Check whether the app still accepts this session's cookies. Never raises.

        The check loads the app root, then returns the page to the session's
        notebook. A session that has not been initialized yet has nothing to
        check and reports valid; initialization itself loads fresh cookies.
        """
        if self._closed:
            return False
        if not self._initialized or self._page is None:
            return True

        try:
            if is_auth_redirect(self._page.url, self._settings):
                log.warning("session_auth_invalid", session_id=self.id, reason="on_login_page")
                return False

            await self._page.goto(
                self._settings.browser.app_url,
                wait_until="domcontentloaded",
                timeout=self._settings.browser.auth_check_timeout_seconds * 1000,
            )
            if is_auth_redirect(self._page.url, self._settings):
                log.warning("session_auth_invalid", session_id=self.id, reason="redirected")
                return False

            await self._page.goto(self.notebook_url, wait_until="domcontentloaded")
            if is_auth_redirect(self._page.url, self._settings):
                log.warning(
                    "session_auth_invalid", session_id=self.id, reason="notebook_redirected"
                )
                return False
            return True
        except Exception as exc:
            log.warning("session_auth_check_error", session_id=self.id, error=str(exc))
            return False

    async def reset_if_needed(self, notebook_url: str) -> bool:
        """Point the session at *notebook_url*. Returns whether navigation occurred."""
        if notebook_url == self.notebook_url:
            return False

        log.debug(
            "session_retargeting",
            session_id=self.id,
            from_url=self.notebook_url,
            to_url=notebook_url,
        )
        self.notebook_url = notebook_url
        if self._page is not None:
            await self._page.goto(notebook_url, wait_until="domcontentloaded")
            await self._wait_for_ready()
        return True

    async def soft_reset(self) -> bool:
        """Clear client-side storage and reload without relaunching the browser.

        Returns False (and logs) when the reset did not complete.
        """
        if self._page is None:
            return False
        try:
            await self._page.evaluate(_CLEAR_STORAGE_JS)
            await self._page.reload(wait_until="domcontentloaded")
            await self._wait_for_ready()
        except Exception as exc:
            log.warning("session_soft_reset_failed", session_id=self.id, error=str(exc))
            return False
        self._last_used = time.monotonic()
        log.debug("session_soft_reset", session_id=self.id)
        return True

    def idle_seconds(self) -> float:
        return time.monotonic() - self._last_used

    def is_expired(self) -> bool:
        return self.idle_seconds() > self.idle_timeout_seconds

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Release the browser. Safe to call more than once."""
        if self._closed and self._handle is None:
            return
        self._closed = True
        log.debug("session_closing", session_id=self.id)

        task = self._init_task
        self._init_task = None
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await task

        await self._release()

    async def _release(self) -> None:
        handle = self._handle
        self._handle = None
        self._page = None
        self._initialized = False
        if handle is not None:
            try:
                await handle.close()
            except Exception:
                log.warning("session_close_error", session_id=self.id, exc_info=True)

    def stats(self) -> SessionStats:
        return SessionStats(
            id=self.id,
            notebook_url=self.notebook_url,
            headless=self.headless,
            idle_seconds=int(self.idle_seconds()),
            initialized=self._initialized,
        )
