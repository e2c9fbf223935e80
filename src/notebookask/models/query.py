from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from notebookask.errors import ErrorCode


class QueryOptions(BaseModel):
    use_cache: bool = True
    use_pool: bool = True
    headless: bool = True


class QueryResult(BaseModel):
    """Outcome of one ask() call. ``answer`` is None whenever ``success`` is False."""

    question: str
    notebook_url: str
    answer: str | None = None
    success: bool
    duration: float = 0.0  # seconds; 0 for cache hits
    from_cache: bool = False
    used_pool: bool = False
    fell_back: bool = False
    error: str | None = None
    error_code: ErrorCode | None = None
    suggestion: str | None = None


class QueryMetrics(BaseModel):
    """One record per completed query, handed to the history sink."""

    question: str
    notebook_url: str
    answer: str = ""
    duration: float
    from_cache: bool
    used_pool: bool
    success: bool
    error_kind: ErrorCode | None = None
    error: str | None = None
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_result(cls, result: QueryResult) -> QueryMetrics:
        return cls(
            question=result.question,
            notebook_url=result.notebook_url,
            answer=result.answer or "",
            duration=result.duration,
            from_cache=result.from_cache,
            used_pool=result.used_pool,
            success=result.success,
            error_kind=result.error_code,
            error=result.error,
        )
