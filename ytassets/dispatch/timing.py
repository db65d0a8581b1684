"""Cancellable sleeping shared by the rate limiter and the retry controller."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from ytassets.dispatch.errors import BatchCancelledError

SleepFunc = Callable[[float], Awaitable[None]]
ClockFunc = Callable[[], float]


def check_cancelled(cancel: asyncio.Event | None) -> None:
    """Raise BatchCancelledError if the batch cancel signal is set."""
    if cancel is not None and cancel.is_set():
        raise BatchCancelledError("batch cancelled")


async def interruptible_sleep(
    delay: float,
    cancel: asyncio.Event | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> None:
    """Sleep for *delay* seconds, returning early with BatchCancelledError if *cancel* is set."""
    check_cancelled(cancel)
    if delay <= 0:
        return
    if cancel is None:
        await sleep(delay)
        return

    sleeper = asyncio.ensure_future(sleep(delay))
    watcher = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, watcher):
            if not task.done():
                task.cancel()
        await asyncio.gather(sleeper, watcher, return_exceptions=True)

    check_cancelled(cancel)
