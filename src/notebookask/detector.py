"""Adaptive polling for a finished answer in a streaming chat UI.

The UI has no explicit "done" event. An answer counts as finished once the
same text has been read on consecutive polls while the thinking indicator is
hidden. Polling starts at 100ms, backs off multiplicatively while nothing
changes (x1.3 while the indicator shows, x1.2 otherwise) up to 1s, and drops
back to 100ms whenever new text appears.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Error as PlaywrightError

from notebookask.browser import latest_answer_text
from notebookask.errors import ResponseTimeoutError
from notebookask.selectors import RESPONSE_SELECTORS, THINKING_SELECTOR

if TYPE_CHECKING:
    from collections.abc import Sequence

    from playwright.async_api import Page

log = structlog.get_logger()

MIN_POLL_INTERVAL = 0.1
MAX_POLL_INTERVAL = 1.0
THINKING_BACKOFF = 1.3
IDLE_BACKOFF = 1.2
STABLE_READS_REQUIRED = 2
DEFAULT_TIMEOUT_SECONDS = 120.0


async def _is_thinking(page: Page, selector: str) -> bool:
    try:
        element = await page.query_selector(selector)
        return element is not None and await element.is_visible()
    except PlaywrightError:
        # Element detached between lookup and check.
        return False


async def _read_candidate(page: Page, selectors: Sequence[str]) -> str | None:
    try:
        return await latest_answer_text(page, selectors)
    except PlaywrightError:
        return None


async def wait_for_answer(
    page: Page,
    *,
    previous_answer: str | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    thinking_selector: str = THINKING_SELECTOR,
    response_selectors: Sequence[str] = RESPONSE_SELECTORS,
) -> str:
    """Poll *page* until the newest answer text has stabilized.

    *previous_answer* is the text that was already on the page before the
    question was submitted; it is never returned. Raises ResponseTimeoutError
    when no stable answer appears within *timeout* seconds.
    """
    start = time.monotonic()
    last_poll = start
    poll_interval = MIN_POLL_INTERVAL
    stable_count = 0
    last_candidate: str | None = None
    polls = 0

    log.debug("answer_polling_started", timeout=timeout)

    while time.monotonic() - start < timeout:
        elapsed = time.monotonic() - last_poll
        if elapsed < poll_interval:
            await asyncio.sleep(poll_interval - elapsed)
        last_poll = time.monotonic()
        polls += 1

        if await _is_thinking(page, thinking_selector):
            poll_interval = min(poll_interval * THINKING_BACKOFF, MAX_POLL_INTERVAL)
            continue

        text = await _read_candidate(page, response_selectors)
        if text and text != previous_answer:
            if text == last_candidate:
                stable_count += 1
                if stable_count >= STABLE_READS_REQUIRED:
                    log.debug(
                        "answer_stabilized",
                        length=len(text),
                        polls=polls,
                        elapsed=round(time.monotonic() - start, 2),
                    )
                    return text
            else:
                stable_count = 0
                last_candidate = text
                # New content: more may be streaming in, poll fast.
                poll_interval = MIN_POLL_INTERVAL

        poll_interval = min(poll_interval * IDLE_BACKOFF, MAX_POLL_INTERVAL)

    log.error("answer_polling_timeout", timeout=timeout, polls=polls)
    raise ResponseTimeoutError(timeout)
