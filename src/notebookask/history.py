"""SQLite query history.

One row per completed query, written by the orchestrator through
HistoryProtocol. All operations catch ``aiosqlite.Error`` and degrade
gracefully: reads return empty results, writes are logged and dropped.
A broken history database never fails a query.
"""

from __future__ import annotations

from datetime import datetime

import aiosqlite
import structlog

from notebookask.errors import ErrorCode
from notebookask.models.query import QueryMetrics

log = structlog.get_logger()

MAX_HISTORY_ROWS = 1000

_CREATE_HISTORY_TABLE = """
CREATE TABLE IF NOT EXISTS query_history (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    question     TEXT NOT NULL,
    notebook_url TEXT NOT NULL,
    answer       TEXT NOT NULL DEFAULT '',
    duration     REAL NOT NULL,
    from_cache   INTEGER NOT NULL,
    used_pool    INTEGER NOT NULL,
    success      INTEGER NOT NULL,
    error_kind   TEXT,
    error        TEXT,
    recorded_at  TEXT NOT NULL
)
"""

_CREATE_HISTORY_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_history_recorded ON query_history(recorded_at)"
)

_SELECT_COLUMNS = (
    "SELECT question, notebook_url, answer, duration, from_cache, used_pool, "
    "success, error_kind, error, recorded_at FROM query_history"
)


def _row_to_metrics(row: tuple) -> QueryMetrics:
    return QueryMetrics(
        question=row[0],
        notebook_url=row[1],
        answer=row[2],
        duration=row[3],
        from_cache=bool(row[4]),
        used_pool=bool(row[5]),
        success=bool(row[6]),
        error_kind=ErrorCode(row[7]) if row[7] else None,
        error=row[8],
        recorded_at=datetime.fromisoformat(row[9]),
    )


class QueryHistory:
    """SQLite-backed query history implementing HistoryProtocol."""

    def __init__(self, db: aiosqlite.Connection, *, max_rows: int = MAX_HISTORY_ROWS) -> None:
        self._db = db
        self._max_rows = max_rows

    async def init_db(self) -> None:
        """Create the table. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_HISTORY_TABLE)
        await self._db.execute(_CREATE_HISTORY_INDEX)
        await self._db.commit()

    async def record(self, metrics: QueryMetrics) -> None:
        """Append one record and prune to the newest ``max_rows``. Non-fatal on failure."""
        try:
            await self._db.execute(
                "INSERT INTO query_history "
                "(question, notebook_url, answer, duration, from_cache, used_pool, "
                "success, error_kind, error, recorded_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    metrics.question,
                    metrics.notebook_url,
                    metrics.answer,
                    metrics.duration,
                    int(metrics.from_cache),
                    int(metrics.used_pool),
                    int(metrics.success),
                    metrics.error_kind.value if metrics.error_kind else None,
                    metrics.error,
                    metrics.recorded_at.isoformat(),
                ),
            )
            await self._db.execute(
                "DELETE FROM query_history WHERE id NOT IN "
                "(SELECT id FROM query_history ORDER BY id DESC LIMIT ?)",
                (self._max_rows,),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("history_write_error", exc_info=True)

    async def list_recent(self, limit: int = 20) -> list[QueryMetrics]:
        """Newest first. Returns an empty list on read failure."""
        try:
            cursor = await self._db.execute(
                f"{_SELECT_COLUMNS} ORDER BY id DESC LIMIT ?",
                (limit,),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error:
            log.warning("history_read_error", exc_info=True)
            return []
        return [_row_to_metrics(row) for row in rows]

    async def search(self, text: str, limit: int = 20) -> list[QueryMetrics]:
        """Case-insensitive substring match over question, answer and notebook URL."""
        pattern = f"%{text.lower()}%"
        try:
            cursor = await self._db.execute(
                f"{_SELECT_COLUMNS} WHERE lower(question) LIKE ? OR lower(answer) LIKE ? "
                "OR lower(notebook_url) LIKE ? ORDER BY id DESC LIMIT ?",
                (pattern, pattern, pattern, limit),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error:
            log.warning("history_read_error", exc_info=True)
            return []
        return [_row_to_metrics(row) for row in rows]

    async def clear(self) -> int:
        """Delete every record. Returns the number removed (0 on failure)."""
        try:
            cursor = await self._db.execute("DELETE FROM query_history")
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("history_write_error", exc_info=True)
            return 0
        removed = cursor.rowcount
        log.info("history_cleared", removed=removed)
        return removed
