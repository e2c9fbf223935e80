"""Tool handlers for cache_stats, cache_clear and cache_cleanup."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from notebookask.models.tools import CacheClearInput

if TYPE_CHECKING:
    from notebookask.state import AppState

RECENT_ENTRIES_SHOWN = 10


async def handle_stats(state: AppState) -> dict:
    log = structlog.get_logger().bind(tool="cache_stats")
    log.info("handler_called")

    if state.cache is None:
        return {"enabled": False}
    stats = await state.cache.stats()
    recent = await state.cache.entries(limit=RECENT_ENTRIES_SHOWN)
    return {
        "enabled": True,
        **stats.model_dump(mode="json"),
        "recent": [
            {
                "question": entry.question,
                "notebook_url": entry.notebook_url,
                "hit_count": entry.hit_count,
                "age": entry.age_formatted(),
            }
            for entry in recent
        ],
    }


async def handle_clear(question: str | None, notebook_url: str | None, state: AppState) -> dict:
    """Remove matching entries. With both filters an entry must match both."""
    log = structlog.get_logger().bind(tool="cache_clear")
    validated = CacheClearInput(question=question, notebook_url=notebook_url)
    log.info(
        "handler_called",
        question=validated.question is not None,
        notebook_url=validated.notebook_url,
    )

    if state.cache is None:
        return {"enabled": False, "removed": 0}
    removed = await state.cache.invalidate(validated.question, validated.notebook_url)
    return {"enabled": True, "removed": removed}


async def handle_cleanup(state: AppState) -> dict:
    log = structlog.get_logger().bind(tool="cache_cleanup")
    log.info("handler_called")

    if state.cache is None:
        return {"enabled": False, "removed": 0}
    removed = await state.cache.cleanup_expired()
    return {"enabled": True, "removed": removed}
