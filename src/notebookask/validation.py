"""Notebook URL validation.

Runs before any browser work: a URL that fails here never reaches a
Playwright page.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urlparse

from notebookask.errors import ValidationError

if TYPE_CHECKING:
    from notebookask.config import Settings

_TRAVERSAL_MARKERS = ("..", "%2e%2e", "%252e%252e")
MAX_URL_LENGTH = 2048


def allowed_hosts(settings: Settings) -> frozenset[str]:
    """The app host plus its bare registrable domain (``google.com`` for the default)."""
    host = urlparse(settings.browser.app_url).hostname or ""
    hosts = {host}
    parts = host.split(".")
    if len(parts) > 2:
        hosts.add(".".join(parts[-2:]))
    return frozenset(h for h in hosts if h)


def validate_notebook_url(url: str, settings: Settings) -> str:
    """Return *url* unchanged if it is a safe notebook URL, else raise ValidationError."""
    if not url or len(url) > MAX_URL_LENGTH:
        raise ValidationError(f"Invalid notebook URL: must be 1-{MAX_URL_LENGTH} characters")

    lowered = url.lower()
    if any(marker in lowered for marker in _TRAVERSAL_MARKERS):
        raise ValidationError("Invalid notebook URL: contains path traversal sequences")

    parsed = urlparse(url)
    if parsed.scheme != "https":
        raise ValidationError("Invalid notebook URL: must use https")
    if not parsed.hostname:
        raise ValidationError("Invalid notebook URL: missing host")

    hosts = allowed_hosts(settings)
    if parsed.hostname.lower() not in hosts:
        raise ValidationError(
            f"Invalid notebook URL: host must be one of {', '.join(sorted(hosts))}"
        )
    return url
