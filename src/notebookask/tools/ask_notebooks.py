"""Tool handler for ask_notebooks: one question, several notebooks, in parallel."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from notebookask.errors import ErrorCode, NotebookAskError
from notebookask.models.query import QueryOptions
from notebookask.models.tools import AskNotebooksInput

if TYPE_CHECKING:
    from notebookask.state import AppState


async def handle(
    question: str,
    notebook_urls: list[str],
    use_cache: bool,
    state: AppState,
) -> dict:
    """Handle an ask_notebooks tool call.

    Per-notebook failures are reported inside ``results``; the call itself
    only fails on invalid input.
    """
    log = structlog.get_logger().bind(tool="ask_notebooks")
    log.info("handler_called", notebooks=len(notebook_urls))

    try:
        validated = AskNotebooksInput(
            question=question, notebook_urls=notebook_urls, use_cache=use_cache
        )
    except ValueError as exc:
        raise NotebookAskError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide a non-empty question and between 1 and 20 notebook URLs.",
            recoverable=False,
        ) from exc

    results = await state.get_orchestrator().ask_many(
        validated.question,
        validated.notebook_urls,
        QueryOptions(use_cache=validated.use_cache, headless=state.settings.session.headless),
    )
    return {
        "question": validated.question,
        "succeeded": sum(1 for r in results if r.success),
        "failed": sum(1 for r in results if not r.success),
        "results": [r.model_dump(mode="json") for r in results],
    }
