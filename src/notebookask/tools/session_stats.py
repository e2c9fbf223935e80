"""Tool handler for session_stats."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from notebookask.state import AppState


async def handle(state: AppState) -> dict:
    log = structlog.get_logger().bind(tool="session_stats")
    log.info("handler_called")
    return state.pool.stats().model_dump(mode="json")
