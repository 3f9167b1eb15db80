"""Runs the repositories against a real MongoDB replica set at MONGO_URI; skipped when none answers."""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from fleetmon.db.mongo import ensure_transactions_supported
from fleetmon.db.repositories.activity_logs_repo import ActivityLogsRepository
from fleetmon.db.repositories.agents_repo import AgentsRepository
from fleetmon.db.repositories.stats_repo import StatsRepository
from fleetmon.models.domain.activity_log import ActivityLogCreate

NOW = datetime(2025, 1, 15, 3, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def mongo_db():
    client = AsyncIOMotorClient(os.environ["MONGO_URI"], tz_aware=True, serverSelectionTimeoutMS=500)
    try:
        await ensure_transactions_supported(client)
    except (PyMongoError, RuntimeError) as exc:
        client.close()
        pytest.skip(f"no MongoDB replica set available: {exc}")
    name = f"fleetmon_test_{uuid.uuid4().hex[:8]}"
    db = client[name]
    # Collections must exist before they can be written inside a transaction on older servers.
    for collection in ("agents", "api_breakdown", "daily_stats", "hourly_stats"):
        await db.create_collection(collection)
    try:
        yield db
    finally:
        await client.drop_database(name)
        client.close()


async def _count(stats, today, **overrides):
    params = dict(
        agent_id="a1",
        api_type="calculate",
        response_time_ms=100.0,
        is_error=False,
        count_api=True,
        count_task=True,
        today=today,
        hour="12",
        now=NOW,
    )
    params.update(overrides)
    await stats.apply_counted_stat(**params)


@pytest.mark.asyncio
async def test_counted_stats_and_reset_on_a_replica_set(mongo_db):
    stats = StatsRepository(mongo_db)
    await stats.ensure_indexes()

    await _count(stats, "2025-01-14", is_error=True, response_time_ms=300.0)
    await _count(stats, "2025-01-14")
    await _count(stats, "2025-01-15", count_api=False)

    agent = await AgentsRepository(mongo_db).get("a1")
    assert (agent.today_api_calls, agent.total_api_calls, agent.today_tasks) == (0, 2, 1)
    assert agent.avg_response_time == pytest.approx(500 / 3)
    assert agent.error_rate == pytest.approx(1 / 3)

    assert await stats.reset_today_counters("2025-01-16") == 1
    assert await stats.reset_today_counters("2025-01-16") == 0
    [row] = await stats.list_breakdown("a1")
    assert (row.today_count, row.total_count) == (0, 2)
    assert [day.date for day in await stats.list_daily("a1")] == ["2025-01-15", "2025-01-14"]


@pytest.mark.asyncio
async def test_log_ids_are_monotonic_on_a_replica_set(mongo_db):
    logs = ActivityLogsRepository(mongo_db)
    await logs.ensure_indexes()

    for n in range(3):
        await logs.append(ActivityLogCreate(agent_id="a1", action=f"step {n}", type="log", status="success", timestamp=NOW))

    assert [log.log_id for log in await logs.list_recent(agent_id="a1")] == [3, 2, 1]
