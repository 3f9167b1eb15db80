from __future__ import annotations

from typing import Dict, List, Optional

from fleetmon.core.config import get_settings
from fleetmon.core.errors import AgentNotFoundError
from fleetmon.core.logging import get_logger
from fleetmon.core.utils import canonical_today
from fleetmon.db.repositories.activity_logs_repo import ActivityLogsRepository
from fleetmon.db.repositories.agents_repo import AgentsRepository
from fleetmon.db.repositories.stats_repo import StatsRepository
from fleetmon.models.api.responses import (
    ActivityLogItem,
    AgentView,
    BreakdownCounts,
    DailyHistoryItem,
    HourlyItem,
)
from fleetmon.models.domain.activity_log import ActivityLog
from fleetmon.models.domain.agent import Agent, ApiBreakdown, DailyStat, HourlyStat

HISTORY_DAYS = 30
AGENT_LOG_LIMIT = 50


def today_hourly(rows: List[HourlyStat], today: str) -> List[HourlyItem]:
    """All 24 canonical hours; rows still holding another day's counts read as zero."""
    current = {row.hour: row for row in rows if row.is_for(today)}
    items: List[HourlyItem] = []
    for hour in range(24):
        key = f"{hour:02d}"
        row = current.get(key)
        items.append(HourlyItem(hour=key, tasks=row.tasks if row else 0, api_calls=row.api_calls if row else 0))
    return items


def log_item(log: ActivityLog, agent_name: Optional[str] = None) -> ActivityLogItem:
    return ActivityLogItem(
        id=log.log_id,
        agent_id=log.agent_id,
        agent=agent_name,
        action=log.action,
        type=log.type,
        status=log.status,
        timestamp=log.timestamp,
        response_time=log.response_time,
        user_name=log.user_name,
        image_url=log.image_url,
    )


def build_agent_view(
    agent: Agent,
    *,
    today: str,
    breakdown: List[ApiBreakdown],
    daily: List[DailyStat],
    hourly: List[HourlyStat],
    logs: List[ActivityLog],
) -> AgentView:
    fresh = agent.counters_date == today
    api_breakdown: Dict[str, BreakdownCounts] = {
        row.api_type: BreakdownCounts(
            today=row.today_count if row.counters_date == today else 0,
            total=row.total_count,
        )
        for row in breakdown
    }
    return AgentView(
        id=agent.agent_id,
        name=agent.name,
        client_id=agent.client_id,
        client_name=agent.client_name,
        model=agent.model,
        account=agent.account,
        base_url=agent.base_url,
        status=agent.status.value,
        api_status=agent.api_status.value,
        created_at=agent.created_at,
        last_active=agent.last_active,
        total_api_calls=agent.total_api_calls,
        today_api_calls=agent.today_api_calls if fresh else 0,
        total_tasks=agent.total_tasks,
        today_tasks=agent.today_tasks if fresh else 0,
        error_rate=agent.error_rate,
        avg_response_time=agent.avg_response_time,
        is_live_agent=agent.is_live,
        api_breakdown=api_breakdown,
        daily_history=[
            DailyHistoryItem(date=row.date, tasks=row.tasks, api_calls=row.api_calls, breakdown=row.breakdown)
            for row in daily
        ],
        hourly_stats=today_hourly(hourly, today),
        activity_logs=[log_item(log, agent.name) for log in logs],
    )


class DashboardService:
    """Read path behind the dashboard's agent cards, charts and activity feed."""

    def __init__(
        self,
        agents_repo: Optional[AgentsRepository] = None,
        stats_repo: Optional[StatsRepository] = None,
        logs_repo: Optional[ActivityLogsRepository] = None,
    ) -> None:
        self.agents_repo = agents_repo or AgentsRepository()
        self.stats_repo = stats_repo or StatsRepository()
        self.logs_repo = logs_repo or ActivityLogsRepository()
        self.settings = get_settings()
        self.logger = get_logger("DashboardService")

    async def list_agents(self) -> List[AgentView]:
        agents = await self.agents_repo.list_all()
        today = canonical_today(self.settings.canonical_timezone)
        views = [await self._view(agent, today) for agent in agents]
        self.logger.debug("DashboardService.list_agents", count=len(views))
        return views

    async def get_agent(self, agent_id: str) -> AgentView:
        agent = await self.agents_repo.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return await self._view(agent, canonical_today(self.settings.canonical_timezone))

    async def recent_activity(self, limit: int = 100) -> List[ActivityLogItem]:
        logs = await self.logs_repo.list_recent(limit=limit)
        names = {agent.agent_id: agent.name for agent in await self.agents_repo.list_all()}
        return [log_item(log, names.get(log.agent_id)) for log in logs]

    async def _view(self, agent: Agent, today: str) -> AgentView:
        return build_agent_view(
            agent,
            today=today,
            breakdown=await self.stats_repo.list_breakdown(agent.agent_id),
            daily=await self.stats_repo.list_daily(agent.agent_id, limit=HISTORY_DAYS),
            hourly=await self.stats_repo.list_hourly(agent.agent_id),
            logs=await self.logs_repo.list_recent(limit=AGENT_LOG_LIMIT, agent_id=agent.agent_id),
        )
