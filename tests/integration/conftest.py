"""Integration test fixtures.

Provides an AppState wired with the real on-disk response cache and an
in-memory SQLite history, with the browser replaced by the scripted
FakeLauncher from tests/fakes.py.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING

import aiosqlite
import pytest

from notebookask.cache import ResponseCache
from notebookask.history import QueryHistory
from notebookask.pool import SessionPool
from notebookask.state import AppState

if TYPE_CHECKING:
    from pathlib import Path

    from fakes import FakeLauncher

    from notebookask.config import Settings
    from notebookask.credentials import CredentialStore


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Baseline env dict for subprocess-based MCP integration tests.

    Points every data path at an isolated tmp directory so a developer's real
    credentials and cache are never touched.
    """
    env = os.environ.copy()
    env["NOTEBOOKASK__DATA_DIR"] = str(tmp_path)
    env["NOTEBOOKASK__LOGGING__LEVEL"] = "WARNING"
    return env


@pytest.fixture()
async def app_state(
    settings: Settings,
    credential_store: CredentialStore,
    launcher: FakeLauncher,
    tmp_path: Path,
) -> AsyncGenerator[AppState, None]:
    """Full AppState for handler-level integration tests."""
    async with aiosqlite.connect(":memory:") as db:
        history = QueryHistory(db)
        await history.init_db()
        cache = ResponseCache(tmp_path / "response_cache.json", max_size=10)

        state = AppState(
            settings=settings,
            credentials=credential_store,
            launcher=launcher,
            pool=SessionPool.for_settings(settings, launcher),
            cache=cache,
            history=history,
            history_db=db,
        )
        yield state
        await state.pool.close_all()
