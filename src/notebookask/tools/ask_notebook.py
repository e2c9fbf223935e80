"""Tool handler for ask_notebook.

Receives AppState, validates input, runs the question through the
orchestrator and returns the answer as a dict. A failed query is raised as
NotebookAskError so the caller sees the error code and the suggested fix.
No MCP or FastMCP imports; server.py handles the MCP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from notebookask.errors import ErrorCode, NotebookAskError
from notebookask.models.query import QueryOptions, QueryResult
from notebookask.models.tools import AskNotebookInput

if TYPE_CHECKING:
    from notebookask.state import AppState


async def handle(
    question: str,
    notebook_url: str,
    use_cache: bool,
    use_pool: bool,
    state: AppState,
) -> dict:
    """Handle an ask_notebook tool call."""
    log = structlog.get_logger().bind(tool="ask_notebook", notebook_url=notebook_url)
    log.info("handler_called")

    try:
        validated = AskNotebookInput(
            question=question,
            notebook_url=notebook_url,
            use_cache=use_cache,
            use_pool=use_pool,
        )
    except ValueError as exc:
        raise NotebookAskError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide a non-empty question (max 10000 chars) and a notebook URL.",
            recoverable=False,
        ) from exc

    result = await state.get_orchestrator().ask(
        validated.question,
        validated.notebook_url,
        QueryOptions(
            use_cache=validated.use_cache,
            use_pool=validated.use_pool,
            headless=state.settings.session.headless,
        ),
    )
    raise_for_failure(result)
    return result.model_dump(mode="json", exclude={"error", "error_code", "suggestion"})


def raise_for_failure(result: QueryResult) -> None:
    """Turn a failed QueryResult into the NotebookAskError it was built from."""
    if result.success:
        return
    code = result.error_code or ErrorCode.BROWSER_ERROR
    raise NotebookAskError(
        code=code,
        message=result.error or "Query failed",
        suggestion=result.suggestion or "Retry the question.",
        recoverable=code in (ErrorCode.RESPONSE_TIMEOUT, ErrorCode.BROWSER_CRASHED),
    )
