from __future__ import annotations

from pydantic import BaseModel


class SessionStats(BaseModel):
    id: str
    notebook_url: str
    headless: bool
    idle_seconds: int
    initialized: bool


class PoolStats(BaseModel):
    active_sessions: int
    fallbacks: int
    sessions: list[SessionStats]
