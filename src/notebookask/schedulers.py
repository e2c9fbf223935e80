"""Background sweeps for idle sessions and expired cache entries."""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from notebookask.state import AppState

log = structlog.get_logger()


def _jittered_delay(base_seconds: float) -> float:
    return base_seconds * random.uniform(0.8, 1.2)


async def run_session_cleanup_scheduler(state: AppState) -> None:
    """Close pooled sessions idle past their timeout, every cleanup interval."""
    interval_seconds = state.settings.session.cleanup_interval_minutes * 60

    while True:
        await asyncio.sleep(_jittered_delay(interval_seconds))
        try:
            removed = await state.pool.cleanup_expired()
        except Exception:
            log.warning("session_cleanup_scheduler_error", exc_info=True)
            continue
        if removed:
            log.info("session_cleanup_sweep", removed=removed, remaining=len(state.pool))


async def run_cache_cleanup_scheduler(state: AppState) -> None:
    """Drop expired cache entries at startup and then on the cleanup interval."""
    if state.cache is None:
        return
    interval_seconds = state.settings.session.cleanup_interval_minutes * 60

    while True:
        try:
            removed = await state.cache.cleanup_expired()
        except Exception:
            log.warning("cache_cleanup_scheduler_error", exc_info=True)
        else:
            if removed:
                log.info("cache_cleanup_sweep", removed=removed)
        await asyncio.sleep(_jittered_delay(interval_seconds))
