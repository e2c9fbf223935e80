"""Unit tests for the SQLite query history."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import aiosqlite
import pytest

from notebookask.errors import ErrorCode
from notebookask.history import QueryHistory
from notebookask.models.query import QueryMetrics

NB = "https://notebooklm.google.com/notebook/abc"


def _metrics(question: str, **overrides: object) -> QueryMetrics:
    fields: dict[str, object] = {
        "question": question,
        "notebook_url": NB,
        "answer": f"answer to {question}",
        "duration": 1.5,
        "from_cache": False,
        "used_pool": True,
        "success": True,
    }
    fields.update(overrides)
    return QueryMetrics(**fields)


@pytest.fixture()
async def db() -> AsyncGenerator[aiosqlite.Connection, None]:
    async with aiosqlite.connect(":memory:") as conn:
        yield conn


@pytest.fixture()
async def history(db: aiosqlite.Connection) -> QueryHistory:
    h = QueryHistory(db, max_rows=5)
    await h.init_db()
    return h


class TestRecord:
    async def test_record_and_list_newest_first(self, history: QueryHistory) -> None:
        await history.record(_metrics("first"))
        await history.record(_metrics("second"))

        rows = await history.list_recent()
        assert [r.question for r in rows] == ["second", "first"]
        assert rows[0].used_pool is True
        assert rows[0].duration == 1.5

    async def test_failure_fields_round_trip(self, history: QueryHistory) -> None:
        await history.record(
            _metrics(
                "broken",
                answer="",
                success=False,
                error_kind=ErrorCode.RESPONSE_TIMEOUT,
                error="No stable answer within 120s",
            )
        )
        [row] = await history.list_recent()
        assert row.success is False
        assert row.error_kind == ErrorCode.RESPONSE_TIMEOUT
        assert row.error == "No stable answer within 120s"

    async def test_prunes_to_max_rows(self, history: QueryHistory) -> None:
        for i in range(8):
            await history.record(_metrics(f"q{i}"))

        rows = await history.list_recent(limit=100)
        assert len(rows) == 5
        assert rows[0].question == "q7"
        assert rows[-1].question == "q3"

    async def test_list_limit(self, history: QueryHistory) -> None:
        for i in range(4):
            await history.record(_metrics(f"q{i}"))
        assert len(await history.list_recent(limit=2)) == 2


class TestSearch:
    async def test_matches_question_answer_and_url(self, history: QueryHistory) -> None:
        await history.record(_metrics("What is photosynthesis?"))
        await history.record(_metrics("Other", answer="Mentions PHOTOSYNTHESIS too"))
        await history.record(_metrics("Unrelated", notebook_url=NB + "/other"))

        assert len(await history.search("photosynthesis")) == 2
        assert [r.question for r in await history.search("/other")] == ["Unrelated"]

    async def test_no_match(self, history: QueryHistory) -> None:
        await history.record(_metrics("q"))
        assert await history.search("zebra") == []


class TestClear:
    async def test_clear_returns_count(self, history: QueryHistory) -> None:
        await history.record(_metrics("a"))
        await history.record(_metrics("b"))
        assert await history.clear() == 2
        assert await history.list_recent() == []


class TestGracefulDegradation:
    async def test_missing_table_degrades(self, db: aiosqlite.Connection) -> None:
        history = QueryHistory(db)  # init_db never called

        await history.record(_metrics("lost"))
        assert await history.list_recent() == []
        assert await history.search("lost") == []
        assert await history.clear() == 0
