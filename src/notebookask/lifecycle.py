"""Ordered async shutdown hooks.

Hooks run once, in registration order, each with a bounded grace period.
A hook that overruns or raises is logged and skipped; the remaining hooks
still run. Wired to SIGINT/SIGTERM and to the server lifespan teardown so
browser processes are not orphaned however the process exits.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    Hook = Callable[[], Awaitable[object]]

log = structlog.get_logger()

DEFAULT_GRACE_SECONDS = 5.0
_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownHooks:
    def __init__(self, grace_seconds: float = DEFAULT_GRACE_SECONDS) -> None:
        self._grace_seconds = grace_seconds
        self._hooks: list[tuple[str, Hook]] = []
        self._ran = False
        self._running: asyncio.Task[None] | None = None

    @property
    def ran(self) -> bool:
        return self._ran

    def register(self, name: str, hook: Hook) -> None:
        self._hooks.append((name, hook))

    async def run(self) -> None:
        """Run every hook once. Later calls are no-ops."""
        if self._ran:
            return
        self._ran = True

        for name, hook in self._hooks:
            try:
                await asyncio.wait_for(hook(), timeout=self._grace_seconds)
                log.debug("shutdown_hook_complete", hook=name)
            except TimeoutError:
                log.warning("shutdown_hook_timeout", hook=name, grace_seconds=self._grace_seconds)
            except Exception:
                log.warning("shutdown_hook_error", hook=name, exc_info=True)

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """Run the hooks on SIGINT/SIGTERM, then re-raise the default behaviour."""
        for sig in _SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig, loop)
            except (NotImplementedError, RuntimeError):
                # No signal support on this loop (Windows, non-main thread).
                log.debug("signal_handler_unavailable", signal=sig.name)

    def remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in _SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                log.debug("signal_handler_unavailable", signal=sig.name)

    def _on_signal(self, sig: signal.Signals, loop: asyncio.AbstractEventLoop) -> None:
        log.info("shutdown_signal_received", signal=sig.name)
        if self._running is None:
            self._running = loop.create_task(self._run_then_exit(sig, loop))

    async def _run_then_exit(self, sig: signal.Signals, loop: asyncio.AbstractEventLoop) -> None:
        await self.run()
        self.remove_signal_handlers(loop)
        signal.raise_signal(sig)
