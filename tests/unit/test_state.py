"""Unit tests for AppState construction and the process-wide instance."""

from __future__ import annotations

from pathlib import Path

from notebookask.cache import ResponseCache
from notebookask.config import Settings
from notebookask.history import QueryHistory
from notebookask.orchestrator import QueryOrchestrator
from notebookask.state import build_state, get_state, reset_state, set_state


class TestBuildState:
    async def test_wires_every_component(self, settings: Settings) -> None:
        state = await build_state(settings)
        try:
            assert isinstance(state.cache, ResponseCache)
            assert isinstance(state.history, QueryHistory)
            assert state.credentials.exists() is False
            assert len(state.pool) == 0
            assert Path(settings.history.db_path).exists()
        finally:
            await state.shutdown.run()

    async def test_disabled_components_are_absent(self, tmp_path: Path) -> None:
        state = await build_state(
            Settings(data_dir=str(tmp_path), cache={"enabled": False}, history={"enabled": False})
        )
        assert state.cache is None
        assert state.history is None
        assert state.history_db is None
        await state.shutdown.run()

    async def test_shutdown_saves_cache(self, settings: Settings) -> None:
        state = await build_state(settings)
        await state.cache.set("q", "a", "https://notebooklm.google.com/notebook/x")

        await state.shutdown.run()

        assert state.shutdown.ran is True
        assert Path(settings.cache.path).exists()

    async def test_orchestrator_is_created_once(self, settings: Settings) -> None:
        state = await build_state(settings)
        try:
            first = state.get_orchestrator()
            assert isinstance(first, QueryOrchestrator)
            assert state.get_orchestrator() is first
        finally:
            await state.shutdown.run()


class TestSharedState:
    async def test_get_state_builds_once_and_reset_tears_down(self, settings: Settings) -> None:
        set_state(None)
        state = await get_state(settings)
        assert await get_state() is state

        await reset_state()

        assert state.shutdown.ran is True
        fresh = await get_state(settings)
        assert fresh is not state
        await reset_state()
