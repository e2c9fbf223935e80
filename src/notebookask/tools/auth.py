"""Tool handlers for auth_status, setup_auth, validate_auth and clear_auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from notebookask.auth import setup_auth, validate_stored_auth
from notebookask.errors import ErrorCode, NotebookAskError

if TYPE_CHECKING:
    from notebookask.state import AppState


async def handle_status(state: AppState) -> dict:
    """Report stored-credential presence and freshness. Never opens a browser."""
    log = structlog.get_logger().bind(tool="auth_status")
    log.info("handler_called")
    return state.credentials.info().model_dump(mode="json")


async def handle_setup(timeout_minutes: float, state: AppState) -> dict:
    log = structlog.get_logger().bind(tool="setup_auth")
    log.info("handler_called", timeout_minutes=timeout_minutes)

    if timeout_minutes <= 0:
        raise NotebookAskError(
            code=ErrorCode.INVALID_INPUT,
            message="timeout_minutes must be positive",
            suggestion="Pass a login window in minutes, for example 10.",
            recoverable=False,
        )

    if not await setup_auth(state, timeout_minutes=timeout_minutes):
        raise NotebookAskError(
            code=ErrorCode.NOT_AUTHENTICATED,
            message=f"Login was not completed within {timeout_minutes:g} minutes",
            suggestion="Run setup_auth again and finish the login in the opened browser window.",
            recoverable=True,
        )
    return state.credentials.info().model_dump(mode="json")


async def handle_validate(state: AppState) -> dict:
    log = structlog.get_logger().bind(tool="validate_auth")
    log.info("handler_called")
    valid = await validate_stored_auth(state)
    return {"valid": valid, **state.credentials.info().model_dump(mode="json")}


async def handle_clear(state: AppState) -> dict:
    log = structlog.get_logger().bind(tool="clear_auth")
    log.info("handler_called")
    await state.pool.close_all()
    return {"cleared": state.credentials.clear()}
