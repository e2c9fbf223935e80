"""Tool handlers for history_list, history_search and history_clear."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from notebookask.errors import ErrorCode, NotebookAskError
from notebookask.models.tools import HistoryListInput, HistorySearchInput

if TYPE_CHECKING:
    from notebookask.models.query import QueryMetrics
    from notebookask.state import AppState

ANSWER_PREVIEW_CHARS = 200


def _invalid(exc: ValueError) -> NotebookAskError:
    return NotebookAskError(
        code=ErrorCode.INVALID_INPUT,
        message=str(exc),
        suggestion="limit must be between 1 and 100; search text must not be blank.",
        recoverable=False,
    )


def _summarise(record: QueryMetrics) -> dict:
    answer = record.answer
    if len(answer) > ANSWER_PREVIEW_CHARS:
        answer = answer[:ANSWER_PREVIEW_CHARS] + "…"
    return {
        "question": record.question,
        "notebook_url": record.notebook_url,
        "answer": answer,
        "success": record.success,
        "from_cache": record.from_cache,
        "duration": round(record.duration, 2),
        "error_code": record.error_kind,
        "recorded_at": record.recorded_at.isoformat(),
    }


async def handle_list(limit: int, state: AppState) -> dict:
    """Most recent queries first."""
    log = structlog.get_logger().bind(tool="history_list")
    log.info("handler_called", limit=limit)

    try:
        validated = HistoryListInput(limit=limit)
    except ValueError as exc:
        raise _invalid(exc) from exc

    if state.history is None:
        return {"enabled": False, "records": []}
    records = await state.history.list_recent(validated.limit)
    return {"enabled": True, "records": [_summarise(r) for r in records]}


async def handle_search(text: str, limit: int, state: AppState) -> dict:
    log = structlog.get_logger().bind(tool="history_search")
    log.info("handler_called", limit=limit)

    try:
        validated = HistorySearchInput(text=text, limit=limit)
    except ValueError as exc:
        raise _invalid(exc) from exc

    if state.history is None:
        return {"enabled": False, "records": []}
    records = await state.history.search(validated.text, validated.limit)
    return {
        "enabled": True,
        "text": validated.text,
        "records": [_summarise(r) for r in records],
    }


async def handle_clear(state: AppState) -> dict:
    log = structlog.get_logger().bind(tool="history_clear")
    log.info("handler_called")

    if state.history is None:
        return {"enabled": False, "removed": 0}
    return {"enabled": True, "removed": await state.history.clear()}
