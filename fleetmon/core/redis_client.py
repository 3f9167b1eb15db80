from __future__ import annotations

import asyncio
from typing import Optional

from redis.asyncio import Redis as AsyncRedis
from redis.asyncio import from_url as redis_from_url

from .config import get_settings
from .logging import get_logger

_redis_client: Optional[AsyncRedis] = None
_redis_loop: Optional[asyncio.AbstractEventLoop] = None
_logger = get_logger("RedisClient")


def _current_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def get_redis_client() -> AsyncRedis:
    """
    Process-wide async Redis client for the realtime channel.

    Publishers and the SSE stream share it. Like the Mongo client it is
    rebuilt when the loop it was created on has been closed.
    """
    global _redis_client, _redis_loop

    if _redis_client is not None and not (_redis_loop is not None and _redis_loop.is_closed()):
        return _redis_client

    settings = get_settings()
    if _redis_client is not None:
        _logger.warning("RedisClient.reinitialising", reason="event loop closed")
    _redis_client = redis_from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    _redis_loop = _current_loop()
    _logger.info("RedisClient.initialised", redis_url=settings.redis_url)
    return _redis_client


async def close_redis_client() -> None:
    global _redis_client, _redis_loop

    if _redis_client is None:
        return
    client, _redis_client, _redis_loop = _redis_client, None, None
    try:
        await client.aclose()
    except Exception as exc:
        _logger.warning("RedisClient.close_failed", error=str(exc))
