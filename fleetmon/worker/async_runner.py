from __future__ import annotations

import asyncio
from typing import Any, Awaitable

from fleetmon.core.logging import get_logger


_logger = get_logger("AsyncRunner")

_loop: asyncio.AbstractEventLoop | None = None


def get_worker_event_loop() -> asyncio.AbstractEventLoop:
    """
    One event loop per worker process, kept open for the process lifetime.

    Motor and redis.asyncio clients are singletons bound to the loop they first
    ran on, so periodic rollover checks and probes must all share it.
    """
    global _loop

    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
        asyncio.set_event_loop(_loop)
        _logger.info("AsyncRunner.loop.initialised")

    return _loop


def run_worker_coroutine(coro: Awaitable[Any]) -> Any:
    loop = get_worker_event_loop()
    try:
        return loop.run_until_complete(coro)
    except Exception as exc:
        _logger.error("AsyncRunner.run.error", error=str(exc))
        raise
