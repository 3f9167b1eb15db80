from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path, Query

from fleetmon.api.deps import get_agent_service, get_dashboard_service
from fleetmon.core.security import require_operator
from fleetmon.models.api.requests import AgentUpdateRequest
from fleetmon.models.api.responses import ActivityLogItem, AgentView, ToggleResponse
from fleetmon.services.agent_service import AgentService
from fleetmon.services.dashboard_service import DashboardService

router = APIRouter(prefix="/v1", tags=["agents"])


@router.get("/agents", response_model=List[AgentView])
async def list_agents(service: DashboardService = Depends(get_dashboard_service)) -> List[AgentView]:
    return await service.list_agents()


@router.get("/agents/{agent_id}", response_model=AgentView)
async def get_agent(
    agent_id: str = Path(...),
    service: DashboardService = Depends(get_dashboard_service),
) -> AgentView:
    return await service.get_agent(agent_id)


@router.patch("/agents/{agent_id}", response_model=AgentView)
async def update_agent(
    payload: AgentUpdateRequest,
    agent_id: str = Path(...),
    agents: AgentService = Depends(get_agent_service),
    dashboard: DashboardService = Depends(get_dashboard_service),
    _: str = Depends(require_operator),
) -> AgentView:
    await agents.update_metadata(agent_id, payload)
    return await dashboard.get_agent(agent_id)


@router.post("/agents/{agent_id}/toggle", response_model=ToggleResponse)
async def toggle_agent(
    agent_id: str = Path(...),
    agents: AgentService = Depends(get_agent_service),
    _: str = Depends(require_operator),
) -> ToggleResponse:
    agent = await agents.toggle(agent_id)
    return ToggleResponse(success=True, status=agent.status.value)


@router.get("/activity-logs", response_model=List[ActivityLogItem])
async def list_activity_logs(
    limit: int = Query(default=100, ge=1, le=500),
    service: DashboardService = Depends(get_dashboard_service),
) -> List[ActivityLogItem]:
    return await service.recent_activity(limit=limit)
