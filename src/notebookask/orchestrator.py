"""Query orchestration: cache, pooled session, direct fallback.

Flow for one question:
  1. Cache lookup. A hit returns immediately with duration 0; no browser work.
  2. Pooled path: reuse a warm session from the pool.
  3. On session corruption (AuthExpiredError, BrowserCrashedError) close every
     pooled session and retry exactly once on the direct path, which launches
     a throwaway browser and always closes it.
  4. Store successful answers in the cache.

Expected failures never raise out of ``ask()``: they come back as a failed
QueryResult carrying the error code. Every call records one QueryMetrics.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from notebookask.browser import (
    configure_page,
    find_first_selector,
    is_auth_redirect,
    latest_answer_text,
    setup_resource_blocking,
    submit_question,
)
from notebookask.detector import wait_for_answer
from notebookask.errors import (
    AuthExpiredError,
    BrowserCrashedError,
    BrowserError,
    ErrorCode,
    NotAuthenticatedError,
    NotebookAskError,
)
from notebookask.models.query import QueryMetrics, QueryOptions, QueryResult
from notebookask.selectors import QUERY_INPUT_SELECTORS, RESPONSE_SELECTORS
from notebookask.validation import validate_notebook_url

if TYPE_CHECKING:
    from collections.abc import Sequence

    from playwright.async_api import Page

    from notebookask.state import AppState

log = structlog.get_logger()


class QueryOrchestrator:
    """Runs questions against notebooks for one AppState."""

    def __init__(self, state: AppState) -> None:
        self._state = state
        self._settings = state.settings
        self._semaphore = asyncio.Semaphore(state.settings.query.max_parallel)

    async def ask(
        self,
        question: str,
        notebook_url: str,
        options: QueryOptions | None = None,
    ) -> QueryResult:
        """Answer *question* from the notebook at *notebook_url*."""
        options = options or QueryOptions()
        result = await self._ask(question, notebook_url, options)
        await self._record(result)
        return result

    async def ask_many(
        self,
        question: str,
        notebook_urls: Sequence[str],
        options: QueryOptions | None = None,
    ) -> list[QueryResult]:
        """Ask the same question of several notebooks concurrently.

        Results come back in input order. At most ``query.max_parallel``
        browser queries run at once; a failure for one notebook never affects
        the others.
        """
        options = options or QueryOptions()
        log.info("parallel_query_started", notebooks=len(notebook_urls))
        outcomes = await asyncio.gather(
            *(self.ask(question, url, options) for url in notebook_urls),
            return_exceptions=True,
        )

        results: list[QueryResult] = []
        for url, outcome in zip(notebook_urls, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                log.error("parallel_query_unexpected_error", notebook_url=url, exc_info=outcome)
                outcome = QueryResult(
                    question=question,
                    notebook_url=url,
                    success=False,
                    error=str(outcome) or type(outcome).__name__,
                )
            results.append(outcome)

        log.info(
            "parallel_query_complete",
            notebooks=len(results),
            succeeded=sum(1 for r in results if r.success),
        )
        return results

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _ask(self, question: str, notebook_url: str, options: QueryOptions) -> QueryResult:
        qlog = log.bind(notebook_url=notebook_url)
        question = question.strip()

        try:
            if not question:
                raise NotebookAskError(
                    code=ErrorCode.INVALID_INPUT,
                    message="Question must not be empty",
                    suggestion="Provide the question text to ask the notebook.",
                )
            validate_notebook_url(notebook_url, self._settings)
        except NotebookAskError as exc:
            return _failed(question, notebook_url, exc)

        cache = self._state.cache if options.use_cache else None
        if cache is not None:
            cached = await cache.get(question, notebook_url)
            if cached is not None:
                qlog.info("cache_hit")
                return QueryResult(
                    question=question,
                    notebook_url=notebook_url,
                    answer=cached,
                    success=True,
                    duration=0.0,
                    from_cache=True,
                )

        if not self._state.credentials.exists():
            qlog.warning("query_not_authenticated")
            return _failed(question, notebook_url, NotAuthenticatedError())

        start = time.monotonic()
        use_pool = options.use_pool and self._settings.session.use_pool
        fell_back = False
        answer: str | None = None

        async with self._semaphore:
            if use_pool:
                try:
                    answer = await self._ask_pooled(question, notebook_url, options.headless)
                except (AuthExpiredError, BrowserCrashedError) as exc:
                    qlog.warning("pooled_query_failed", code=exc.code, error=exc.message)
                    self._state.pool.record_fallback()
                    await self._state.pool.close_all()
                    qlog.info("falling_back_to_direct")
                    fell_back = True
                except NotebookAskError as exc:
                    qlog.error("pooled_query_error", code=exc.code, error=exc.message)
                    return _failed(
                        question,
                        notebook_url,
                        exc,
                        duration=time.monotonic() - start,
                        used_pool=True,
                    )

            if answer is None:
                try:
                    answer = await self._ask_direct(question, notebook_url, options.headless)
                except NotebookAskError as exc:
                    qlog.error("direct_query_error", code=exc.code, error=exc.message)
                    return _failed(
                        question,
                        notebook_url,
                        exc,
                        duration=time.monotonic() - start,
                        fell_back=fell_back,
                    )

        duration = time.monotonic() - start
        qlog.info(
            "query_answered",
            length=len(answer),
            duration=round(duration, 2),
            used_pool=use_pool and not fell_back,
            fell_back=fell_back,
        )

        if cache is not None:
            await cache.set(question, answer, notebook_url)

        return QueryResult(
            question=question,
            notebook_url=notebook_url,
            answer=answer,
            success=True,
            duration=duration,
            used_pool=use_pool and not fell_back,
            fell_back=fell_back,
        )

    async def _ask_pooled(self, question: str, notebook_url: str, headless: bool) -> str:
        """Query through a warm pooled session.

        The session is leased for the whole exchange, so two questions never
        share a page. The pool re-validates a reused session before handing it
        out. Raises AuthExpiredError or BrowserCrashedError when the session
        itself is unusable; any other NotebookAskError is terminal for the call.
        """
        try:
            async with self._state.pool.lease(notebook_url, headless) as session:
                page = await session.get_page()
                if is_auth_redirect(page.url, self._settings):
                    raise AuthExpiredError()

                selector = await find_first_selector(
                    page, QUERY_INPUT_SELECTORS, self._settings.query.input_timeout_seconds
                )
                if selector is None:
                    raise BrowserCrashedError("Query input not found on pooled page")

                return await self._submit_and_wait(page, selector, question)
        except PlaywrightTimeoutError as exc:
            raise BrowserError(f"Browser operation timed out: {exc.message}") from exc
        except PlaywrightError as exc:
            raise BrowserCrashedError(f"Browser error: {exc.message}") from exc

    async def _ask_direct(self, question: str, notebook_url: str, headless: bool) -> str:
        """Query through a fresh, single-use browser. The browser is always closed."""
        log.info("direct_query_started", notebook_url=notebook_url)
        try:
            handle = await self._state.launcher(headless=headless)
        except PlaywrightError as exc:
            raise BrowserError(f"Failed to launch browser: {exc.message}") from exc
        try:
            page = await handle.context.new_page()
            configure_page(page, self._settings)
            await page.goto(notebook_url, wait_until="domcontentloaded")
            if is_auth_redirect(page.url, self._settings):
                raise AuthExpiredError("Redirected to login while opening the notebook")

            selector = await find_first_selector(
                page, QUERY_INPUT_SELECTORS, self._settings.query.input_timeout_seconds
            )
            if selector is None:
                raise BrowserError("Could not find the query input on the notebook page")

            if self._settings.browser.block_resources:
                await setup_resource_blocking(page)

            return await self._submit_and_wait(page, selector, question)
        except PlaywrightTimeoutError as exc:
            raise BrowserError(f"Browser operation timed out: {exc.message}") from exc
        except PlaywrightError as exc:
            raise BrowserError(f"Browser error: {exc.message}") from exc
        finally:
            await handle.close()

    async def _submit_and_wait(self, page: Page, selector: str, question: str) -> str:
        # Snapshot so an answer already on a reused page is not mistaken for the new one.
        previous = await latest_answer_text(page, RESPONSE_SELECTORS)
        await submit_question(page, selector, question, fast=self._settings.browser.fast_typing)
        return await wait_for_answer(
            page,
            previous_answer=previous,
            timeout=self._settings.query.response_timeout_seconds,
        )

    async def _record(self, result: QueryResult) -> None:
        if self._state.history is None:
            return
        await self._state.history.record(QueryMetrics.from_result(result))


def _failed(
    question: str,
    notebook_url: str,
    error: NotebookAskError,
    *,
    duration: float = 0.0,
    used_pool: bool = False,
    fell_back: bool = False,
) -> QueryResult:
    return QueryResult(
        question=question,
        notebook_url=notebook_url,
        success=False,
        duration=duration,
        used_pool=used_pool,
        fell_back=fell_back,
        error=error.message,
        error_code=error.code,
        suggestion=error.suggestion,
    )
