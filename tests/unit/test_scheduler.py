"""Unit tests for the session and cache cleanup schedulers in schedulers.py.

Tests the loops by mocking asyncio.sleep. The fake sleep records each
duration and raises CancelledError to stop the loop after a set number of
sweeps.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

import pytest

from notebookask.schedulers import run_cache_cleanup_scheduler, run_session_cleanup_scheduler

if TYPE_CHECKING:
    from notebookask.state import AppState


def _stop_after(count: int, durations: list[float]):
    async def fake_sleep(duration: float) -> None:
        durations.append(duration)
        if len(durations) >= count:
            raise asyncio.CancelledError

    return fake_sleep


class TestSessionCleanupScheduler:
    async def test_sleeps_interval_then_sweeps(self, app_state: AppState) -> None:
        durations: list[float] = []
        cleanup = AsyncMock(return_value=0)
        app_state.pool.cleanup_expired = cleanup

        with (
            patch("asyncio.sleep", side_effect=_stop_after(3, durations)),
            patch(
                "notebookask.schedulers._jittered_delay",
                side_effect=lambda seconds: float(seconds),
            ),
            pytest.raises(asyncio.CancelledError),
        ):
            await run_session_cleanup_scheduler(app_state)

        interval = app_state.settings.session.cleanup_interval_minutes * 60
        assert durations == [interval, interval, interval]
        assert cleanup.await_count == 2

    async def test_sweep_error_does_not_stop_loop(self, app_state: AppState) -> None:
        durations: list[float] = []
        cleanup = AsyncMock(side_effect=[RuntimeError("browser gone"), 1])
        app_state.pool.cleanup_expired = cleanup

        with (
            patch("asyncio.sleep", side_effect=_stop_after(3, durations)),
            pytest.raises(asyncio.CancelledError),
        ):
            await run_session_cleanup_scheduler(app_state)

        assert cleanup.await_count == 2

    async def test_delay_is_jittered_within_bounds(self, app_state: AppState) -> None:
        durations: list[float] = []

        with (
            patch("asyncio.sleep", side_effect=_stop_after(1, durations)),
            pytest.raises(asyncio.CancelledError),
        ):
            await run_session_cleanup_scheduler(app_state)

        interval = app_state.settings.session.cleanup_interval_minutes * 60
        assert interval * 0.8 <= durations[0] <= interval * 1.2


class TestCacheCleanupScheduler:
    async def test_returns_immediately_without_cache(self, app_state: AppState) -> None:
        app_state.cache = None
        await run_cache_cleanup_scheduler(app_state)

    async def test_sweeps_at_startup_then_on_interval(self, app_state: AppState) -> None:
        durations: list[float] = []
        cleanup = AsyncMock(return_value=2)
        app_state.cache.cleanup_expired = cleanup

        with (
            patch("asyncio.sleep", side_effect=_stop_after(2, durations)),
            patch(
                "notebookask.schedulers._jittered_delay",
                side_effect=lambda seconds: float(seconds),
            ),
            pytest.raises(asyncio.CancelledError),
        ):
            await run_cache_cleanup_scheduler(app_state)

        assert cleanup.await_count == 2
        assert durations == [app_state.settings.session.cleanup_interval_minutes * 60] * 2

    async def test_sweep_error_is_logged_and_loop_continues(self, app_state: AppState) -> None:
        durations: list[float] = []
        cleanup = AsyncMock(side_effect=[OSError("disk full"), 0])
        app_state.cache.cleanup_expired = cleanup

        with (
            patch("asyncio.sleep", side_effect=_stop_after(2, durations)),
            pytest.raises(asyncio.CancelledError),
        ):
            await run_cache_cleanup_scheduler(app_state)

        assert cleanup.await_count == 2
