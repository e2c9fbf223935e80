"""DOM selectors for the notebook UI.

Each list is ordered: callers try candidates in sequence and the first
visible match wins. Several entries cover localized labels of the same
control.
"""

from __future__ import annotations

QUERY_INPUT_SELECTORS: tuple[str, ...] = (
    "textarea.query-box-input",
    'textarea[aria-label="Feld für Anfragen"]',  # German
    'textarea[aria-label="Input for queries"]',
    'textarea[placeholder*="Ask"]',
)

RESPONSE_SELECTORS: tuple[str, ...] = (
    ".to-user-container .message-text-content",
    '[data-message-author="bot"]',
    '[data-message-author="assistant"]',
)

# Visible while the notebook is still generating an answer.
THINKING_SELECTOR = "div.thinking-message"
