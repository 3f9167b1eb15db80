from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection, AsyncIOMotorDatabase

from fleetmon.db import pipelines
from fleetmon.db.mongo import get_database
from fleetmon.models.domain.agent import ApiBreakdown, DailyStat, HourlyStat


class StatsRepository:
    """
    Counter documents: agents (counter fields only), api_breakdown,
    daily_stats and hourly_stats.

    `apply_counted_stat` and `reset_today_counters` each run inside one
    multi-document transaction, so a reader never observes agent counters
    updated without the matching breakdown/daily/hourly rows.
    """

    def __init__(self, db: Optional[AsyncIOMotorDatabase] = None) -> None:
        self._db: AsyncIOMotorDatabase = db or get_database()
        self._agents: AsyncIOMotorCollection = self._db["agents"]
        self._breakdown: AsyncIOMotorCollection = self._db["api_breakdown"]
        self._daily: AsyncIOMotorCollection = self._db["daily_stats"]
        self._hourly: AsyncIOMotorCollection = self._db["hourly_stats"]

    async def ensure_indexes(self) -> None:
        await self._breakdown.create_index([("agent_id", 1), ("api_type", 1)], unique=True)
        await self._daily.create_index([("agent_id", 1), ("date", -1)], unique=True)
        await self._hourly.create_index([("agent_id", 1), ("hour", 1)], unique=True)

    async def apply_counted_stat(
        self,
        *,
        agent_id: str,
        api_type: str,
        response_time_ms: float,
        is_error: bool,
        count_api: bool,
        count_task: bool,
        today: str,
        hour: str,
        now: datetime,
    ) -> None:
        async def _apply(session: AsyncIOMotorClientSession) -> None:
            await self._agents.update_one(
                {"agent_id": agent_id},
                pipelines.agent_counted_stat_update(
                    today=today,
                    now=now,
                    response_time_ms=response_time_ms,
                    is_error=is_error,
                    count_api=count_api,
                    count_task=count_task,
                ),
                upsert=True,
                session=session,
            )
            if count_api:
                await self._breakdown.update_one(
                    {"agent_id": agent_id, "api_type": api_type},
                    pipelines.breakdown_counted_update(today=today),
                    upsert=True,
                    session=session,
                )
            if count_api or count_task:
                await self._daily.update_one(
                    {"agent_id": agent_id, "date": today},
                    pipelines.daily_counted_update(api_type=api_type, count_api=count_api, count_task=count_task),
                    upsert=True,
                    session=session,
                )
                await self._hourly.update_one(
                    {"agent_id": agent_id, "hour": hour},
                    pipelines.hourly_counted_update(today=today, count_api=count_api, count_task=count_task),
                    upsert=True,
                    session=session,
                )

        # with_transaction retries on transient write conflicts, which is how
        # concurrent events for the same agent serialize.
        async with await self._db.client.start_session() as session:
            await session.with_transaction(_apply)

    async def reset_today_counters(self, today: str) -> int:
        """Zero today counters not already stamped with `today`. Returns agents reset."""
        reset_agents = 0

        async def _reset(session: AsyncIOMotorClientSession) -> None:
            nonlocal reset_agents
            result = await self._agents.update_many(
                pipelines.stale_counters_filter(today),
                pipelines.agent_reset_update(today),
                session=session,
            )
            await self._breakdown.update_many(
                pipelines.stale_counters_filter(today),
                pipelines.breakdown_reset_update(today),
                session=session,
            )
            reset_agents = result.modified_count

        async with await self._db.client.start_session() as session:
            await session.with_transaction(_reset)
        return reset_agents

    async def list_breakdown(self, agent_id: str) -> List[ApiBreakdown]:
        cursor = self._breakdown.find({"agent_id": agent_id}).sort("api_type", 1)
        return [ApiBreakdown(**doc) async for doc in cursor]

    async def list_daily(self, agent_id: str, *, limit: int = 30) -> List[DailyStat]:
        cursor = self._daily.find({"agent_id": agent_id}).sort("date", -1).limit(limit)
        return [DailyStat(**doc) async for doc in cursor]

    async def list_hourly(self, agent_id: str) -> List[HourlyStat]:
        cursor = self._hourly.find({"agent_id": agent_id}).sort("hour", 1)
        return [HourlyStat(**doc) async for doc in cursor]
