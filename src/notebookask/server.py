"""MCP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the FastMCP lifespan context manager
- Start and stop the background sweeps and shutdown hooks
- Register tools
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING

import structlog
from mcp.server.fastmcp import Context, FastMCP
from mcp.types import CallToolResult, TextContent

import notebookask.tools.ask_notebook as t_ask
import notebookask.tools.ask_notebooks as t_ask_many
import notebookask.tools.auth as t_auth
import notebookask.tools.cache_admin as t_cache
import notebookask.tools.history as t_history
import notebookask.tools.session_stats as t_sessions
from notebookask import __version__
from notebookask.config import Settings
from notebookask.errors import NotebookAskError
from notebookask.schedulers import run_cache_cleanup_scheduler, run_session_cleanup_scheduler
from notebookask.state import build_state, set_state

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable

    from notebookask.state import AppState

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # stdout carries the MCP JSON-RPC stream
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings = Settings()
    _setup_logging(settings)

    log.info("server_starting", version=__version__)

    state = await build_state(settings)
    set_state(state)

    loop = asyncio.get_running_loop()
    state.shutdown.install_signal_handlers(loop)

    session_cleanup_task = asyncio.create_task(run_session_cleanup_scheduler(state))
    cache_cleanup_task = asyncio.create_task(run_cache_cleanup_scheduler(state))

    log.info(
        "server_started",
        version=__version__,
        authenticated=state.credentials.exists(),
        cache_enabled=state.cache is not None,
    )

    try:
        yield state
    finally:
        session_cleanup_task.cancel()
        cache_cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await session_cleanup_task
        with suppress(asyncio.CancelledError):
            await cache_cleanup_task
        await state.shutdown.run()
        state.shutdown.remove_signal_handlers(loop)
        set_state(None)
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# FastMCP instance and tool registration
# ---------------------------------------------------------------------------

mcp = FastMCP("notebookask", lifespan=lifespan)
# FastMCP takes no version argument; the initialize handshake reads it from
# the low-level server.
mcp._mcp_server.version = __version__  # pyright: ignore[reportPrivateUsage]


def _serialise_tool_error(error: NotebookAskError) -> CallToolResult:
    """Convert a NotebookAskError to the MCP tool error result envelope."""
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(error.to_dict()))],
        isError=True,
    )


async def _run_tool(name: str, call: Awaitable[dict]) -> object:
    try:
        return await call
    except NotebookAskError as exc:
        log.warning(
            "tool_error",
            tool=name,
            code=exc.code,
            message=exc.message,
            recoverable=exc.recoverable,
        )
        return _serialise_tool_error(exc)
    except Exception:
        log.error("tool_unexpected_error", tool=name, exc_info=True)
        raise


@mcp.tool()
async def ask_notebook(
    question: str,
    notebook_url: str,
    ctx: Context,
    use_cache: bool = True,
    use_pool: bool = True,
) -> object:
    """Ask a question and get a citation-grounded answer from a notebook.

    Answers are cached per (question, notebook). Set use_cache=false to force
    a fresh answer, use_pool=false to skip the warm browser session.
    """
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool(
        "ask_notebook", t_ask.handle(question, notebook_url, use_cache, use_pool, state)
    )


@mcp.tool()
async def ask_notebooks(
    question: str,
    notebook_urls: list[str],
    ctx: Context,
    use_cache: bool = True,
) -> object:
    """Ask the same question of several notebooks in parallel."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool(
        "ask_notebooks", t_ask_many.handle(question, notebook_urls, use_cache, state)
    )


@mcp.tool()
async def cache_stats(ctx: Context) -> object:
    """Show response-cache hit rate, size and the most recent entries."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("cache_stats", t_cache.handle_stats(state))


@mcp.tool()
async def cache_clear(
    ctx: Context,
    question: str | None = None,
    notebook_url: str | None = None,
) -> object:
    """Remove cached answers.

    No arguments clears everything. With both arguments only entries matching
    both the question and the notebook are removed.
    """
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("cache_clear", t_cache.handle_clear(question, notebook_url, state))


@mcp.tool()
async def cache_cleanup(ctx: Context) -> object:
    """Remove expired cache entries."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("cache_cleanup", t_cache.handle_cleanup(state))


@mcp.tool()
async def auth_status(ctx: Context) -> object:
    """Report whether browser credentials are stored and how old they are."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("auth_status", t_auth.handle_status(state))


@mcp.tool()
async def setup_auth(ctx: Context, timeout_minutes: float = 10.0) -> object:
    """Open a visible browser window and wait for you to log in to the notebook app."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("setup_auth", t_auth.handle_setup(timeout_minutes, state))


@mcp.tool()
async def validate_auth(ctx: Context) -> object:
    """Check the stored credentials against the live app in a headless browser."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("validate_auth", t_auth.handle_validate(state))


@mcp.tool()
async def clear_auth(ctx: Context) -> object:
    """Delete stored credentials and close every pooled browser session."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("clear_auth", t_auth.handle_clear(state))


@mcp.tool()
async def history_list(ctx: Context, limit: int = 20) -> object:
    """List the most recent questions asked, newest first."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("history_list", t_history.handle_list(limit, state))


@mcp.tool()
async def history_search(text: str, ctx: Context, limit: int = 20) -> object:
    """Find past questions whose question, answer or notebook URL contains *text*."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("history_search", t_history.handle_search(text, limit, state))


@mcp.tool()
async def history_clear(ctx: Context) -> object:
    """Delete every query history record."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("history_clear", t_history.handle_clear(state))


@mcp.tool()
async def session_stats(ctx: Context) -> object:
    """List warm browser sessions and the pool's fallback count."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("session_stats", t_sessions.handle(state))


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
