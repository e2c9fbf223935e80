from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    AUTH_EXPIRED = "AUTH_EXPIRED"
    BROWSER_CRASHED = "BROWSER_CRASHED"
    BROWSER_ERROR = "BROWSER_ERROR"
    RESPONSE_TIMEOUT = "RESPONSE_TIMEOUT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    CREDENTIALS_ERROR = "CREDENTIALS_ERROR"
    INVALID_INPUT = "INVALID_INPUT"


_REAUTH_SUGGESTION = "Re-run authentication setup to refresh the stored browser session."


class NotebookAskError(Exception):
    """Base class for every expected failure condition.

    Carries a machine-readable code, a human-readable message and a suggested
    remedial action. Tool handlers serialise it into the MCP error response.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }


class AuthExpiredError(NotebookAskError):
    """A pooled session's credentials no longer work.

    Session corruption: the orchestrator swallows it and retries on the
    direct path.
    """

    def __init__(self, message: str = "Session authentication expired") -> None:
        super().__init__(
            code=ErrorCode.AUTH_EXPIRED,
            message=message,
            suggestion=_REAUTH_SUGGESTION,
            recoverable=True,
        )


class BrowserCrashedError(NotebookAskError):
    """A browser context or page became unusable. Same fallback as AuthExpiredError."""

    def __init__(self, message: str = "Browser context crashed") -> None:
        super().__init__(
            code=ErrorCode.BROWSER_CRASHED,
            message=message,
            suggestion="Retry the question; a fresh browser session will be used.",
            recoverable=True,
        )


class BrowserError(NotebookAskError):
    """Initialization, navigation or selector failure. Terminal for the call."""

    def __init__(
        self,
        message: str,
        suggestion: str = (
            "Check that the notebook URL opens in a regular browser and that "
            "the stored session is still logged in."
        ),
    ) -> None:
        super().__init__(
            code=ErrorCode.BROWSER_ERROR,
            message=message,
            suggestion=suggestion,
            recoverable=False,
        )


class ResponseTimeoutError(NotebookAskError, TimeoutError):
    """The response detector exceeded its deadline without a stable answer."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            code=ErrorCode.RESPONSE_TIMEOUT,
            message=f"No stable answer within {timeout_seconds:g}s",
            suggestion="The notebook may still be generating; ask again or raise the timeout.",
            recoverable=True,
        )
        self.timeout_seconds = timeout_seconds


class ValidationError(NotebookAskError):
    """Malformed or unsafe notebook URL, rejected before any browser work."""

    def __init__(self, message: str) -> None:
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            suggestion="Provide an https notebook URL on the notebook application's host.",
            recoverable=False,
        )


class NotAuthenticatedError(NotebookAskError):
    """No stored browser session exists yet."""

    def __init__(self, message: str = "No stored authentication found") -> None:
        super().__init__(
            code=ErrorCode.NOT_AUTHENTICATED,
            message=message,
            suggestion=_REAUTH_SUGGESTION,
            recoverable=False,
        )


class CredentialsError(NotebookAskError):
    """Stored credentials could not be read, decrypted or written."""

    def __init__(self, message: str) -> None:
        super().__init__(
            code=ErrorCode.CREDENTIALS_ERROR,
            message=message,
            suggestion=(
                "Check NOTEBOOKASK__AUTH__ENCRYPTION_KEY, or clear the stored state "
                "and authenticate again."
            ),
            recoverable=False,
        )
