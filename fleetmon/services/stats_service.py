from __future__ import annotations

from typing import Optional

from pymongo.errors import PyMongoError

from fleetmon.core.config import get_settings
from fleetmon.core.errors import StoreError
from fleetmon.core.logging import get_logger
from fleetmon.core.utils import canonical_hour, canonical_today, utc_now
from fleetmon.db.repositories.agents_repo import AgentsRepository
from fleetmon.db.repositories.stats_repo import StatsRepository
from fleetmon.models.domain.events import HeartbeatEvent, StatusChangeEvent
from fleetmon.services.realtime import RealtimePublisher


class StatsAggregator:
    """
    Writes the agent-side consequences of telemetry: counter updates for
    counted stats and the agent upserts for heartbeats and status changes.

    Store failures surface as StoreError; whether the caller hears about them
    is decided by the ingestion failure policy, not here.
    """

    def __init__(
        self,
        agents_repo: Optional[AgentsRepository] = None,
        stats_repo: Optional[StatsRepository] = None,
        publisher: Optional[RealtimePublisher] = None,
    ) -> None:
        self.agents_repo = agents_repo or AgentsRepository()
        self.stats_repo = stats_repo or StatsRepository()
        self.publisher = publisher or RealtimePublisher()
        self.settings = get_settings()
        self.logger = get_logger("StatsAggregator")

    async def apply_counted_stat(
        self,
        agent_id: str,
        api_type: str,
        response_time_ms: float = 0.0,
        is_error: bool = False,
        should_count_api: bool = True,
        should_count_task: bool = True,
    ) -> None:
        now = utc_now()
        tz_name = self.settings.canonical_timezone
        try:
            await self.stats_repo.apply_counted_stat(
                agent_id=agent_id,
                api_type=api_type,
                response_time_ms=response_time_ms,
                is_error=is_error,
                count_api=should_count_api,
                count_task=should_count_task,
                today=canonical_today(tz_name, now),
                hour=canonical_hour(tz_name, now),
                now=now,
            )
        except PyMongoError as exc:
            raise StoreError(f"update_agent_stats failed: {exc}") from exc

        self.logger.debug(
            "StatsAggregator.counted",
            agent_id=agent_id,
            api_type=api_type,
            count_api=should_count_api,
            count_task=should_count_task,
        )
        await self.publisher.publish("agents", "UPDATE", {"agent_id": agent_id, "api_type": api_type})

    async def record_heartbeat(self, event: HeartbeatEvent) -> None:
        metadata = {
            "model": event.model,
            "base_url": event.base_url,
            "account": event.account,
            "api_key": event.api_key,
        }
        try:
            await self.agents_repo.record_heartbeat(event.agent_id, now=utc_now(), metadata=metadata)
        except PyMongoError as exc:
            raise StoreError(f"Heartbeat upsert failed: {exc}") from exc
        self.logger.info("StatsAggregator.heartbeat", agent_id=event.agent_id)
        await self.publisher.publish("agents", "UPDATE", {"agent_id": event.agent_id, "status": "online"})

    async def change_status(self, event: StatusChangeEvent) -> None:
        try:
            await self.agents_repo.set_status(event.agent_id, event.status, now=utc_now())
        except PyMongoError as exc:
            raise StoreError(f"Status change failed: {exc}") from exc
        self.logger.info("StatsAggregator.status_change", agent_id=event.agent_id, status=event.status.value)
        await self.publisher.publish("agents", "UPDATE", {"agent_id": event.agent_id, "status": event.status.value})

    async def reset_today_counters(self, today: str) -> int:
        try:
            reset = await self.stats_repo.reset_today_counters(today)
        except PyMongoError as exc:
            raise StoreError(f"Today counter reset failed: {exc}") from exc
        self.logger.info("StatsAggregator.today_reset", date=today, agents_reset=reset)
        return reset
