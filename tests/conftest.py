"""Shared test fixtures for the notebookask test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeHistory, FakeLauncher

from notebookask.cache import ResponseCache
from notebookask.config import Settings
from notebookask.credentials import CredentialStore
from notebookask.models.auth import Credentials
from notebookask.pool import SessionPool
from notebookask.state import AppState


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in an isolated tmp directory with fast timeouts."""
    return Settings(
        data_dir=str(tmp_path),
        session={"ready_timeout_seconds": 0.1},
        query={"input_timeout_seconds": 0.1, "response_timeout_seconds": 5},
    )


@pytest.fixture()
def credential_store(settings: Settings) -> CredentialStore:
    store = CredentialStore(Path(settings.auth.state_path))
    store.save(
        Credentials(
            cookies=[{"name": "SID", "value": "abc", "domain": ".google.com", "path": "/"}]
        )
    )
    return store


@pytest.fixture()
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture()
def history() -> FakeHistory:
    return FakeHistory()


@pytest.fixture()
def app_state(
    settings: Settings,
    credential_store: CredentialStore,
    launcher: FakeLauncher,
    history: FakeHistory,
) -> AppState:
    """AppState wired with fakes: in-memory cache, scripted browser, list-backed history."""
    return AppState(
        settings=settings,
        credentials=credential_store,
        launcher=launcher,
        pool=SessionPool.for_settings(settings, launcher),
        cache=ResponseCache(max_size=10),
        history=history,
    )
