from __future__ import annotations

import json

import httpx
import pytest

from fleetmon.models.api.requests import StatsPayload
from fleetmon.models.domain.events import ObligationKind
from fleetmon.services.activity_service import ActivityLogger
from fleetmon.services.health_prober import HealthProber
from fleetmon.services.ingestion_service import IngestionService
from fleetmon.services.realtime import RealtimePublisher
from fleetmon.services.stats_service import StatsAggregator


@pytest.mark.asyncio
async def test_publish_reaches_subscribers(fake_redis):
    pubsub = fake_redis.pubsub()
    await pubsub.subscribe("dashboard_events")
    await pubsub.get_message(timeout=1.0)  # subscribe confirmation

    await RealtimePublisher(redis=fake_redis, channel="dashboard_events").publish("agents", "UPDATE", {"agent_id": "a1"})

    message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
    body = json.loads(message["data"])
    assert body["table"] == "agents"
    assert body["event"] == "UPDATE"
    assert body["payload"] == {"agent_id": "a1"}
    assert "timestamp" in body
    await pubsub.aclose()


class _BrokenRedis:
    async def publish(self, channel, message):
        raise ConnectionError("redis down")


@pytest.mark.asyncio
async def test_publish_failure_is_swallowed():
    await RealtimePublisher(redis=_BrokenRedis(), channel="dashboard_events").publish("agents", "UPDATE")


@pytest.fixture
def redis_down_ingestion(agents_repo, stats_repo, logs_repo) -> IngestionService:
    publisher = RealtimePublisher(redis=_BrokenRedis(), channel="dashboard_events")
    return IngestionService(
        aggregator=StatsAggregator(agents_repo=agents_repo, stats_repo=stats_repo, publisher=publisher),
        activity_logger=ActivityLogger(logs_repo=logs_repo, publisher=publisher),
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, status",
    [
        ({"agentId": "a1", "apiType": "heartbeat"}, "online"),
        ({"agentId": "a1", "apiType": "status_change", "status": "processing"}, "processing"),
    ],
)
async def test_registration_succeeds_while_redis_is_down(redis_down_ingestion, agents_repo, body, status):
    result = await redis_down_ingestion.ingest(StatsPayload.model_validate(body))

    assert result.handled[0] in (ObligationKind.HEARTBEAT, ObligationKind.STATUS_CHANGE)
    assert (await agents_repo.get("a1")).status.value == status


@pytest.mark.asyncio
async def test_counted_stat_and_log_succeed_while_redis_is_down(redis_down_ingestion, stats_repo, logs_repo):
    await redis_down_ingestion.ingest(
        StatsPayload.model_validate({"agentId": "a1", "apiType": "calculate", "responseTime": 120, "logMessage": "done"})
    )

    assert stats_repo.agents["a1"]["today_api_calls"] == 1
    assert [row.action for row in logs_repo.rows] == ["done"]


@pytest.mark.asyncio
async def test_health_check_succeeds_while_redis_is_down(redis_down_ingestion, agents_repo, logs_repo):
    agents_repo.seed("a1", name="Quote Bot", base_url="http://agent.internal", status="offline")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/health":
            return httpx.Response(200)
        return httpx.Response(200, json={"success": True})

    prober = HealthProber(
        agents_repo=agents_repo,
        ingestion=redis_down_ingestion,
        publisher=RealtimePublisher(redis=_BrokenRedis(), channel="dashboard_events"),
        transport=httpx.MockTransport(handler),
    )

    result = await prober.probe("a1")

    assert result.success is True
    assert (await agents_repo.get("a1")).api_status.value == "healthy"
    assert [row.type for row in logs_repo.rows] == ["heartbeat"]


@pytest.mark.asyncio
async def test_activity_logger_announces_inserts(logs_repo, publisher):
    logger = ActivityLogger(logs_repo=logs_repo, publisher=publisher)

    first = await logger.append_log("a1", "same", "log", "success")
    second = await logger.append_log("a1", "same", "log", "success")

    assert (first.log_id, second.log_id) == (1, 2)
    assert [message[:2] for message in publisher.messages] == [("activity_logs", "INSERT")] * 2


@pytest.mark.asyncio
async def test_activity_logger_refuses_orphans(logs_repo, publisher):
    logger = ActivityLogger(logs_repo=logs_repo, publisher=publisher)

    assert await logger.append_log(None, "orphan", "log", "success") is None
    assert logs_repo.rows == []


def test_sse_frames_are_named_after_their_table():
    from fleetmon.api.v1.routes_events import format_sse

    data = json.dumps({"table": "agents", "event": "UPDATE", "payload": {}})

    assert format_sse(data, None) == f"event: agents\ndata: {data}\n\n"
    assert format_sse(data, {"activity_logs"}) is None
    assert format_sse("not json", None) == "data: not json\n\n"
