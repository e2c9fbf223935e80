"""Unit tests for interactive login capture and stored-session validation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fakes import NOTEBOOK_A, FakeLauncher, FakePage
from playwright.async_api import Error as PlaywrightError

from notebookask.auth import setup_auth, validate_stored_auth
from notebookask.errors import BrowserError

if TYPE_CHECKING:
    from notebookask.state import AppState

APP_ROOT = "https://notebooklm.google.com"


class TestSetupAuth:
    async def test_waits_for_login_and_saves_cookies(
        self, app_state: AppState, launcher: FakeLauncher
    ) -> None:
        launcher.pages.append(FakePage(redirect_urls={APP_ROOT}))

        assert await setup_auth(app_state, timeout_minutes=1) is True

        loaded = app_state.credentials.load()
        assert loaded is not None
        assert loaded.cookies[0]["value"] == "fresh"
        assert launcher.headless_flags == [False]
        assert launcher.handles[0].closed is True

    async def test_already_logged_in_saves_immediately(
        self, app_state: AppState, launcher: FakeLauncher
    ) -> None:
        assert await setup_auth(app_state) is True
        assert app_state.credentials.load().cookies[0]["value"] == "fresh"

    async def test_login_timeout_returns_false_and_keeps_old_credentials(
        self, app_state: AppState, launcher: FakeLauncher
    ) -> None:
        launcher.pages.append(FakePage(redirect_urls={APP_ROOT}, login_completes=False))

        assert await setup_auth(app_state, timeout_minutes=0.01) is False

        assert app_state.credentials.load().cookies[0]["value"] == "abc"
        assert launcher.handles[0].closed is True

    async def test_closes_pooled_sessions_after_saving(
        self, app_state: AppState, launcher: FakeLauncher
    ) -> None:
        session = await app_state.pool.get_session(NOTEBOOK_A)
        await session.get_page()

        await setup_auth(app_state)

        assert len(app_state.pool) == 0
        assert launcher.handles[0].closed is True

    async def test_launch_failure_raises_browser_error(self, app_state: AppState) -> None:
        async def broken_launcher(*, headless: bool):
            raise PlaywrightError("Executable doesn't exist")

        app_state.launcher = broken_launcher
        with pytest.raises(BrowserError, match="Authentication setup failed"):
            await setup_auth(app_state)


class TestValidateStoredAuth:
    async def test_valid_when_app_loads(
        self, app_state: AppState, launcher: FakeLauncher
    ) -> None:
        assert await validate_stored_auth(app_state) is True
        assert launcher.headless_flags == [True]
        assert launcher.handles[0].closed is True

    async def test_invalid_when_redirected(
        self, app_state: AppState, launcher: FakeLauncher
    ) -> None:
        launcher.pages.append(FakePage(redirect_urls={APP_ROOT}))
        assert await validate_stored_auth(app_state) is False
        assert launcher.handles[0].closed is True

    async def test_no_credentials_skips_browser(
        self, app_state: AppState, launcher: FakeLauncher
    ) -> None:
        app_state.credentials.clear()
        assert await validate_stored_auth(app_state) is False
        assert launcher.launches == 0

    async def test_browser_failure_reports_invalid(self, app_state: AppState) -> None:
        async def broken_launcher(*, headless: bool):
            raise PlaywrightError("Executable doesn't exist")

        app_state.launcher = broken_launcher
        assert await validate_stored_auth(app_state) is False
