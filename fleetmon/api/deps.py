from __future__ import annotations

from fleetmon.services.agent_service import AgentService
from fleetmon.services.dashboard_service import DashboardService
from fleetmon.services.health_prober import HealthProber
from fleetmon.services.ingestion_service import IngestionService


def get_ingestion_service() -> IngestionService:
    return IngestionService()


def get_health_prober() -> HealthProber:
    return HealthProber()


def get_dashboard_service() -> DashboardService:
    return DashboardService()


def get_agent_service() -> AgentService:
    return AgentService()
