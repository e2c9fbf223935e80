from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class AskNotebookInput(BaseModel):
    question: str = Field(min_length=1, max_length=10_000)
    notebook_url: str = Field(min_length=1, max_length=2048)
    use_cache: bool = True
    use_pool: bool = True

    @field_validator("question")
    @classmethod
    def strip_question(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("question must not be blank")
        return v


class AskNotebooksInput(BaseModel):
    question: str = Field(min_length=1, max_length=10_000)
    notebook_urls: list[str] = Field(min_length=1, max_length=20)
    use_cache: bool = True

    @field_validator("question")
    @classmethod
    def strip_question(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("question must not be blank")
        return v


class CacheClearInput(BaseModel):
    question: str | None = None
    notebook_url: str | None = None


class HistoryListInput(BaseModel):
    limit: int = Field(default=20, ge=1, le=100)


class HistorySearchInput(BaseModel):
    text: str = Field(min_length=1, max_length=500)
    limit: int = Field(default=20, ge=1, le=100)

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("text must not be blank")
        return v
