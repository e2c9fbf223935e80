"""Unit tests for NotebookSession lifecycle against scripted pages."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import pytest
from fakes import NOTEBOOK_A, NOTEBOOK_B, FakeLauncher, FakePage
from playwright.async_api import Error as PlaywrightError

from notebookask.errors import AuthExpiredError, BrowserError
from notebookask.session import NotebookSession, session_id

if TYPE_CHECKING:
    from notebookask.config import Settings


def _session(settings: Settings, launcher: FakeLauncher, url: str = NOTEBOOK_A) -> NotebookSession:
    return NotebookSession(url, settings, launcher, headless=True)


class TestInitialization:
    async def test_lazy_until_first_use(self, settings: Settings, launcher: FakeLauncher) -> None:
        session = _session(settings, launcher)
        assert session.initialized is False
        assert launcher.launches == 0

        page = await session.get_page()
        assert session.initialized is True
        assert launcher.launches == 1
        assert page.url == NOTEBOOK_A

    async def test_concurrent_callers_share_one_launch(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        session = _session(settings, launcher)
        pages = await asyncio.gather(*(session.get_page() for _ in range(5)))

        assert launcher.launches == 1
        assert all(page is pages[0] for page in pages)

    async def test_second_get_page_reuses_browser(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        session = _session(settings, launcher)
        first = await session.get_page()
        second = await session.get_page()
        assert first is second
        assert launcher.launches == 1

    async def test_resource_blocking_installed(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        page = await _session(settings, launcher).get_page()
        assert page.routes == ["**/*"]

    async def test_missing_input_fails_not_ready(self, settings: Settings) -> None:
        launcher = FakeLauncher([FakePage(has_input=False)])
        session = _session(settings, launcher)

        with pytest.raises(BrowserError, match="not ready"):
            await session.get_page()

        assert session.initialized is False
        assert launcher.handles[0].closed is True

    async def test_failed_init_can_be_retried(self, settings: Settings) -> None:
        launcher = FakeLauncher([FakePage(has_input=False), FakePage()])
        session = _session(settings, launcher)

        with pytest.raises(BrowserError):
            await session.get_page()
        await session.get_page()

        assert session.initialized is True
        assert launcher.launches == 2

    async def test_login_redirect_is_auth_expired(self, settings: Settings) -> None:
        launcher = FakeLauncher([FakePage(redirect_urls={NOTEBOOK_A})])
        with pytest.raises(AuthExpiredError):
            await _session(settings, launcher).get_page()
        assert launcher.handles[0].closed is True

    async def test_close_during_init_fails_waiters(self, settings: Settings) -> None:
        gate = asyncio.Event()
        inner = FakeLauncher()

        async def slow_launcher(*, headless: bool):
            await gate.wait()
            return await inner(headless=headless)

        session = NotebookSession(NOTEBOOK_A, settings, slow_launcher)
        pending = asyncio.create_task(session.get_page())
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        await session.close()
        with pytest.raises(BrowserError, match="closed"):
            await pending
        assert inner.launches == 0

    async def test_closed_session_cannot_initialize(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        session = _session(settings, launcher)
        await session.close()
        with pytest.raises(BrowserError, match="closed"):
            await session.get_page()


class TestValidateAuth:
    async def test_uninitialized_session_reports_valid(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        assert await _session(settings, launcher).validate_auth() is True
        assert launcher.launches == 0

    async def test_closed_session_reports_invalid(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        session = _session(settings, launcher)
        await session.close()
        assert await session.validate_auth() is False

    async def test_valid_when_app_root_loads(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        session = _session(settings, launcher)
        page = await session.get_page()
        assert await session.validate_auth() is True
        assert page.gotos[-2:] == [settings.browser.app_url, NOTEBOOK_A]
        assert page.url == NOTEBOOK_A

    async def test_invalid_when_redirected_to_login(self, settings: Settings) -> None:
        page = FakePage(redirect_urls={"https://notebooklm.google.com"})
        session = _session(settings, FakeLauncher([page]))
        await session.get_page()
        assert await session.validate_auth() is False

    async def test_never_raises(self, settings: Settings) -> None:
        page = FakePage()
        session = _session(settings, FakeLauncher([page]))
        await session.get_page()

        async def broken_goto(url: str, **kwargs: object) -> None:
            raise PlaywrightError("Target page, context or browser has been closed")

        page.goto = broken_goto
        assert await session.validate_auth() is False


class TestResetAndExpiry:
    async def test_reset_same_target_is_noop(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        session = _session(settings, launcher)
        page = await session.get_page()
        gotos = len(page.gotos)
        assert await session.reset_if_needed(NOTEBOOK_A) is False
        assert len(page.gotos) == gotos

    async def test_reset_navigates_to_new_target(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        session = _session(settings, launcher)
        page = await session.get_page()
        assert await session.reset_if_needed(NOTEBOOK_B) is True
        assert session.notebook_url == NOTEBOOK_B
        assert page.url == NOTEBOOK_B

    async def test_soft_reset_clears_storage_and_reloads(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        session = _session(settings, launcher)
        page = await session.get_page()
        assert await session.soft_reset() is True
        assert len(page.evaluated) == 1
        assert page.reloads == 1
        assert launcher.launches == 1

    async def test_soft_reset_without_page(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        assert await _session(settings, launcher).soft_reset() is False

    async def test_expiry_after_idle_timeout(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        session = _session(settings, launcher)
        assert session.is_expired() is False
        session._last_used = time.monotonic() - (settings.session.idle_timeout_minutes * 60 + 1)
        assert session.is_expired() is True

    async def test_get_page_refreshes_last_used(
        self, settings: Settings, launcher: FakeLauncher
    ) -> None:
        session = _session(settings, launcher)
        await session.get_page()
        session._last_used = time.monotonic() - 3600
        await session.get_page()
        assert session.idle_seconds() < 5


class TestClose:
    async def test_close_is_idempotent(self, settings: Settings, launcher: FakeLauncher) -> None:
        session = _session(settings, launcher)
        await session.get_page()
        await session.close()
        await session.close()

        assert session.closed is True
        assert session.initialized is False
        assert launcher.handles[0].closed is True
        assert launcher.active == 0

    async def test_stats(self, settings: Settings, launcher: FakeLauncher) -> None:
        session = _session(settings, launcher)
        await session.get_page()
        stats = session.stats()
        assert stats.id == session_id(NOTEBOOK_A)
        assert stats.initialized is True
        assert stats.headless is True


def test_session_id_is_stable_fingerprint() -> None:
    assert session_id(NOTEBOOK_A) == session_id(NOTEBOOK_A)
    assert session_id(NOTEBOOK_A) != session_id(NOTEBOOK_B)
    assert len(session_id(NOTEBOOK_A)) == 8
