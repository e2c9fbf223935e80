"""Unit tests for ordered shutdown hooks."""

from __future__ import annotations

import asyncio
import signal
from unittest.mock import MagicMock

from notebookask.lifecycle import ShutdownHooks


class TestRun:
    async def test_hooks_run_in_registration_order(self) -> None:
        calls: list[str] = []
        hooks = ShutdownHooks()

        async def make(name: str) -> None:
            calls.append(name)

        hooks.register("sessions", lambda: make("sessions"))
        hooks.register("cache", lambda: make("cache"))
        hooks.register("db", lambda: make("db"))

        await hooks.run()

        assert calls == ["sessions", "cache", "db"]
        assert hooks.ran is True

    async def test_second_run_is_noop(self) -> None:
        count = 0
        hooks = ShutdownHooks()

        async def hook() -> None:
            nonlocal count
            count += 1

        hooks.register("once", hook)
        await hooks.run()
        await hooks.run()

        assert count == 1

    async def test_failing_hook_does_not_stop_the_rest(self) -> None:
        calls: list[str] = []
        hooks = ShutdownHooks()

        async def broken() -> None:
            raise RuntimeError("close failed")

        async def after() -> None:
            calls.append("after")

        hooks.register("broken", broken)
        hooks.register("after", after)
        await hooks.run()

        assert calls == ["after"]

    async def test_slow_hook_is_abandoned_after_grace_period(self) -> None:
        calls: list[str] = []
        hooks = ShutdownHooks(grace_seconds=0.05)

        async def hangs() -> None:
            await asyncio.sleep(10)

        async def after() -> None:
            calls.append("after")

        hooks.register("hangs", hangs)
        hooks.register("after", after)
        await hooks.run()

        assert calls == ["after"]


class TestSignalHandlers:
    def test_installs_and_removes_for_sigint_and_sigterm(self) -> None:
        loop = MagicMock()
        hooks = ShutdownHooks()

        hooks.install_signal_handlers(loop)
        hooks.remove_signal_handlers(loop)

        installed = {c.args[0] for c in loop.add_signal_handler.call_args_list}
        removed = {c.args[0] for c in loop.remove_signal_handler.call_args_list}
        assert installed == {signal.SIGINT, signal.SIGTERM}
        assert removed == {signal.SIGINT, signal.SIGTERM}

    def test_unsupported_loop_is_tolerated(self) -> None:
        loop = MagicMock()
        loop.add_signal_handler.side_effect = NotImplementedError
        loop.remove_signal_handler.side_effect = NotImplementedError
        hooks = ShutdownHooks()

        hooks.install_signal_handlers(loop)
        hooks.remove_signal_handlers(loop)

    def test_signal_schedules_shutdown_once(self) -> None:
        loop = MagicMock()
        hooks = ShutdownHooks()

        hooks._on_signal(signal.SIGTERM, loop)
        hooks._on_signal(signal.SIGTERM, loop)

        assert loop.create_task.call_count == 1
        # The coroutine was handed to a mock loop and never awaited.
        loop.create_task.call_args.args[0].close()
