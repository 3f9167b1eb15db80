from __future__ import annotations

import json
from typing import Any, Dict, Optional

from redis.asyncio import Redis as AsyncRedis

from fleetmon.core.config import get_settings
from fleetmon.core.logging import get_logger
from fleetmon.core.redis_client import get_redis_client
from fleetmon.core.utils import utc_now


class RealtimePublisher:
    """
    Row-change notifications for connected dashboard sessions.

    Publishing is fire-and-forget: the write that triggered it has already
    happened, so a Redis outage only costs freshness until the next refetch.
    """

    def __init__(self, redis: Optional[AsyncRedis] = None, channel: Optional[str] = None) -> None:
        self._redis = redis
        self.channel = channel or get_settings().realtime_channel
        self.logger = get_logger("RealtimePublisher")

    async def publish(self, table: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        message = {
            "table": table,
            "event": event,
            "payload": payload or {},
            "timestamp": utc_now().isoformat(),
        }
        try:
            redis = self._redis or get_redis_client()
            await redis.publish(self.channel, json.dumps(message, default=str))
        except Exception as exc:
            self.logger.warning("RealtimePublisher.publish_failed", error=str(exc), table=table, event_type=event)
