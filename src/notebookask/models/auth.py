from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class Credentials(BaseModel):
    """Persisted browser authentication state.

    ``cookies`` and ``origins`` mirror Playwright's ``storage_state()`` shape.
    ``saved_at`` is the file modification time when loaded from disk; it is
    informational only, real validity is checked against the live site.
    """

    cookies: list[dict[str, Any]] = []
    origins: list[dict[str, Any]] = []
    saved_at: datetime | None = None

    def storage_state(self) -> dict[str, Any]:
        return {"cookies": self.cookies, "origins": self.origins}


class AuthInfo(BaseModel):
    """Authentication status as reported by the credential store."""

    authenticated: bool
    state_path: str
    state_exists: bool
    encrypted: bool = False
    state_age_hours: float | None = None
    stale: bool = False
    authenticated_at: datetime | None = None
