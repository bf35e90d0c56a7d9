"""
Interrupt handling for the CLI.

The first Ctrl-C during a chat turn stops the LLM stream so the turn can
settle and persist; a second one cancels everything.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import contextlib
import signal
import sys
from typing import Any, TypeVar

CANCELLED_EXIT = 130  # POSIX: 128 + SIGINT (2)

T = TypeVar("T")


def print_cancelled(msg: str = "✖ Cancelled by user") -> None:
    """Print cancellation message to stderr."""
    sys.stderr.write("\n" + msg + "\n")
    sys.stderr.flush()


def run_interruptible(coro: Awaitable[T], on_interrupt: Callable[[], bool]) -> T:
    """
    Run ``coro`` on a fresh event loop with a soft first interrupt.

    ``on_interrupt`` is called on the first SIGINT; if it returns False (nothing
    to stop) the main task is cancelled right away. A second SIGINT always
    cancels it.
    """

    async def _main() -> T:
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(coro)
        interrupts = 0

        def _on_sigint() -> None:
            nonlocal interrupts
            interrupts += 1
            if interrupts == 1 and on_interrupt():
                sys.stderr.write("\n⏹  Stopping response (Ctrl-C again to abort)\n")
                return
            task.cancel()

        with contextlib.suppress(NotImplementedError):
            # Not available on Windows event loops; plain KeyboardInterrupt applies there.
            loop.add_signal_handler(signal.SIGINT, _on_sigint)
        try:
            return await task
        finally:
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)

    return asyncio.run(_main())


def graceful_main(fn: Callable[[list[str]], int], argv: list[str]) -> int:
    """
    Run fn(argv) and handle Ctrl-C/SIGTERM nicely.

    Returns:
        Exit code (130 for cancelled, or fn's return value)
    """

    # Handle SIGTERM like Ctrl-C
    def _term(_signum: int, _frame: Any) -> None:
        raise KeyboardInterrupt()

    old_term = signal.getsignal(signal.SIGTERM)
    signal.signal(signal.SIGTERM, _term)

    try:
        return int(fn(argv) or 0)
    except (KeyboardInterrupt, asyncio.CancelledError):
        print_cancelled()
        return CANCELLED_EXIT
    finally:
        signal.signal(signal.SIGTERM, old_term)
