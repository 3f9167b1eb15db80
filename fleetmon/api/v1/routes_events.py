from __future__ import annotations

import json
from typing import AsyncIterator, Optional, Set

from fastapi import APIRouter, Query, Request
from starlette.responses import StreamingResponse

from fleetmon.core.config import get_settings
from fleetmon.core.logging import bind_request_context, get_logger
from fleetmon.core.redis_client import get_redis_client

router = APIRouter(prefix="/v1", tags=["events"])

KEEPALIVE_EVERY = 15


def format_sse(data: str, tables: Optional[Set[str]]) -> Optional[str]:
    """Frame one channel message as an SSE event named after its table, or None if filtered out."""
    try:
        table = json.loads(data).get("table")
    except (ValueError, AttributeError):
        table = None
    if tables and table not in tables:
        return None
    prefix = f"event: {table}\n" if table else ""
    return f"{prefix}data: {data}\n\n"


@router.get("/events")
async def stream_dashboard_events(
    request: Request,
    tables: Optional[str] = Query(default=None, description="Comma separated table filter"),
):
    """
    Row-level change notifications for dashboards (agents, activity_logs).

    Connect with EventSource to GET /v1/events; a rollover arrives as an
    `agents` event whose `event` field is ROLLOVER.
    """
    logger = bind_request_context(
        get_logger("DashboardEvents"),
        request_id=getattr(request.state, "request_id", None),
        endpoint=str(request.url.path),
    )
    wanted = {name.strip() for name in tables.split(",") if name.strip()} if tables else None
    channel = get_settings().realtime_channel
    redis = get_redis_client()

    async def event_stream() -> AsyncIterator[str]:
        pubsub = redis.pubsub()
        await pubsub.subscribe(channel)
        logger.info("DashboardEvents.subscribed", channel=channel, tables=sorted(wanted) if wanted else None)
        idle = 0

        try:
            while not await request.is_disconnected():
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None:
                    idle += 1
                    if idle >= KEEPALIVE_EVERY:
                        idle = 0
                        yield ": keepalive\n\n"
                    continue
                idle = 0
                data = message["data"]
                if isinstance(data, bytes):
                    data = data.decode("utf-8")
                frame = format_sse(data, wanted)
                if frame:
                    yield frame
            logger.info("DashboardEvents.client_disconnected")
        finally:
            try:
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()
            except Exception as exc:
                logger.warning("DashboardEvents.cleanup_failed", channel=channel, error=str(exc))

    return StreamingResponse(event_stream(), media_type="text/event-stream")
