"""Playwright helpers shared by pooled sessions and the direct path.

Launching, cookie injection, resource blocking, locating the query input,
submitting a question and reading the latest answer. No pooling or retry
policy lives here.
"""

from __future__ import annotations

import asyncio
import random
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from notebookask.models.auth import Credentials

if TYPE_CHECKING:
    from collections.abc import Sequence

    from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route

    from notebookask.config import Settings
    from notebookask.protocols import CredentialStoreProtocol

log = structlog.get_logger()

_BLOCKED_RESOURCE_TYPES = frozenset({"image", "font", "media"})
_BLOCKED_URL_PATTERN = re.compile(
    r"\.(png|jpe?g|gif|webp|svg|ico|woff2?|ttf|otf|eot)(\?|$)"
    r"|google-analytics|gtm\.js|doubleclick|adzerk|/ads/|telemetry|tracking",
    re.IGNORECASE,
)

FAST_TYPING_MAX_CHARS = 100


@dataclass
class BrowserHandle:
    """A launched browser with a single context. ``close()`` releases all three layers."""

    playwright: Playwright
    browser: Browser
    context: BrowserContext

    async def close(self) -> None:
        for closer, what in (
            (self.context.close, "context"),
            (self.browser.close, "browser"),
            (self.playwright.stop, "playwright"),
        ):
            try:
                await closer()
            except Exception:
                log.debug("browser_close_error", layer=what, exc_info=True)


async def launch_context(
    settings: Settings,
    credential_store: CredentialStoreProtocol | None,
    *,
    headless: bool,
) -> BrowserHandle:
    """Launch Chromium and open a context carrying the stored cookies."""
    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(
            headless=headless,
            args=settings.browser.browser_args,
        )
        context = await browser.new_context(
            user_agent=settings.browser.user_agent,
            viewport={
                "width": settings.browser.viewport_width,
                "height": settings.browser.viewport_height,
            },
            locale=settings.browser.locale,
        )
    except Exception:
        await playwright.stop()
        raise

    handle = BrowserHandle(playwright=playwright, browser=browser, context=context)
    if credential_store is not None:
        try:
            await _inject_cookies(context, credential_store)
        except BaseException:
            await handle.close()
            raise
    log.debug("browser_context_launched", headless=headless)
    return handle


async def _inject_cookies(
    context: BrowserContext, credential_store: CredentialStoreProtocol
) -> None:
    # Blocking: file read plus scrypt key derivation.
    credentials = await asyncio.to_thread(credential_store.load)
    if credentials is None or not credentials.cookies:
        log.debug("cookie_injection_skipped", reason="no_stored_cookies")
        return
    await context.add_cookies(credentials.cookies)
    log.debug("cookies_injected", count=len(credentials.cookies))


async def save_context_credentials(
    context: BrowserContext, store: CredentialStoreProtocol
) -> None:
    """Snapshot a live context's cookies and storage into the credential store."""
    state = await context.storage_state()
    await asyncio.to_thread(store.save, Credentials.model_validate(state))


def configure_page(page: Page, settings: Settings) -> None:
    page.set_default_timeout(settings.browser.page_timeout_seconds * 1000)
    page.set_default_navigation_timeout(settings.browser.navigation_timeout_seconds * 1000)


async def setup_resource_blocking(page: Page) -> None:
    """Abort images, fonts, media and tracking requests. Safe for the text-only UI."""

    async def _handle(route: Route) -> None:
        request = route.request
        if request.resource_type in _BLOCKED_RESOURCE_TYPES or _BLOCKED_URL_PATTERN.search(
            request.url
        ):
            await route.abort()
            return
        await route.continue_()

    await page.route("**/*", _handle)


def is_auth_redirect(url: str, settings: Settings) -> bool:
    return settings.browser.auth_redirect_host in url


async def find_first_selector(
    page: Page,
    candidates: Sequence[str],
    timeout_seconds: float,
) -> str | None:
    """Return the first candidate that becomes visible within its own timeout.

    Only selector timeouts are absorbed; any other Playwright error (closed
    page, crashed target) propagates.
    """
    for selector in candidates:
        try:
            element = await page.wait_for_selector(
                selector,
                timeout=timeout_seconds * 1000,
                state="visible",
            )
        except PlaywrightTimeoutError:
            continue
        if element is not None:
            log.debug("selector_matched", selector=selector)
            return selector
    return None


async def latest_answer_text(page: Page, selectors: Sequence[str]) -> str | None:
    """Text of the most recent answer container, trying selectors in order."""
    for selector in selectors:
        elements = await page.query_selector_all(selector)
        if not elements:
            continue
        text = (await elements[-1].inner_text()).strip()
        if text:
            return text
    return None


async def submit_question(
    page: Page,
    selector: str,
    question: str,
    *,
    fast: bool = True,
) -> None:
    """Enter the question into the input control and press Enter."""
    if fast and len(question) < FAST_TYPING_MAX_CHARS:
        await page.fill(selector, question)
    else:
        await page.click(selector)
        for char in question:
            await page.keyboard.type(char)
            await asyncio.sleep(random.uniform(0.025, 0.075))
            if random.random() < 0.05:
                await asyncio.sleep(random.uniform(0.15, 0.4))
    await page.keyboard.press("Enter")
    log.debug("question_submitted", selector=selector, length=len(question))
