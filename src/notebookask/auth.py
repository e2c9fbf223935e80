"""Interactive login capture and stored-session validation.

Both open a throwaway browser through the state's launcher and always close
it. ``setup_auth`` runs headful so a person can complete the login; the
resulting cookies and storage are written through the credential store.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from notebookask.browser import is_auth_redirect, save_context_credentials
from notebookask.errors import BrowserError

if TYPE_CHECKING:
    from notebookask.state import AppState

log = structlog.get_logger()

DEFAULT_LOGIN_TIMEOUT_MINUTES = 10.0


async def setup_auth(
    state: AppState,
    *,
    timeout_minutes: float = DEFAULT_LOGIN_TIMEOUT_MINUTES,
) -> bool:
    """Open the app in a visible browser and wait for the user to log in.

    Returns True once credentials are saved, False when the login window
    timed out. Raises BrowserError when the browser cannot be driven at all.
    """
    settings = state.settings
    try:
        handle = await state.launcher(headless=False)
    except PlaywrightError as exc:
        raise BrowserError(f"Authentication setup failed: {exc.message}") from exc

    try:
        page = await handle.context.new_page()
        await page.goto(
            settings.browser.app_url,
            wait_until="domcontentloaded",
            timeout=settings.browser.navigation_timeout_seconds * 1000,
        )

        if not is_auth_redirect(page.url, settings):
            log.info("auth_already_valid")
        else:
            log.info("auth_waiting_for_login", timeout_minutes=timeout_minutes)
            try:
                await page.wait_for_url(
                    f"{settings.browser.app_url.rstrip('/')}/**",
                    timeout=timeout_minutes * 60 * 1000,
                )
            except PlaywrightTimeoutError:
                log.error("auth_login_timeout", timeout_minutes=timeout_minutes)
                return False

        await save_context_credentials(handle.context, state.credentials)
        log.info("auth_saved")
    except PlaywrightError as exc:
        raise BrowserError(f"Authentication setup failed: {exc.message}") from exc
    finally:
        await handle.close()

    # Pooled sessions still carry the old cookies.
    await state.pool.close_all()
    return True


async def validate_stored_auth(state: AppState) -> bool:
    """Check the stored credentials against the live app. Never raises."""
    if not state.credentials.exists():
        log.info("auth_validate_skipped", reason="no_credentials")
        return False

    settings = state.settings
    try:
        handle = await state.launcher(headless=True)
    except Exception as exc:
        log.warning("auth_validate_failed", error=str(exc))
        return False

    try:
        page = await handle.context.new_page()
        await page.goto(
            settings.browser.app_url,
            wait_until="domcontentloaded",
            timeout=settings.browser.navigation_timeout_seconds * 1000,
        )
        valid = not is_auth_redirect(page.url, settings)
    except PlaywrightError as exc:
        log.warning("auth_validate_failed", error=exc.message)
        return False
    finally:
        await handle.close()

    log.info("auth_validated", valid=valid)
    return valid
