from __future__ import annotations

from typing import Optional

import httpx

from fleetmon.core.config import get_settings
from fleetmon.core.errors import AgentNotFoundError, AgentUnreachableError
from fleetmon.core.logging import get_logger
from fleetmon.db.repositories.agents_repo import AgentsRepository
from fleetmon.models.api.requests import AgentUpdateRequest
from fleetmon.models.domain.agent import Agent, AgentStatus, AgentUpdate
from fleetmon.services.realtime import RealtimePublisher


class AgentService:
    """Operator-side mutations: manual on/off toggle and metadata edits."""

    def __init__(
        self,
        agents_repo: Optional[AgentsRepository] = None,
        publisher: Optional[RealtimePublisher] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.agents_repo = agents_repo or AgentsRepository()
        self.publisher = publisher or RealtimePublisher()
        self.transport = transport
        self.settings = get_settings()
        self.logger = get_logger("AgentService")

    async def toggle(self, agent_id: str) -> Agent:
        agent = await self._require(agent_id)
        if agent.base_url:
            new_status = await self._toggle_live(agent)
        elif agent.status in (AgentStatus.ONLINE, AgentStatus.PROCESSING):
            new_status = AgentStatus.OFFLINE
        else:
            new_status = AgentStatus.ONLINE

        updated = await self.agents_repo.update(agent_id, AgentUpdate(status=new_status))
        if updated is None:
            raise AgentNotFoundError(agent_id)
        self.logger.info("AgentService.toggled", agent_id=agent_id, status=new_status.value, live=agent.is_live)
        await self.publisher.publish("agents", "UPDATE", {"agent_id": agent_id, "status": new_status.value})
        return updated

    async def update_metadata(self, agent_id: str, request: AgentUpdateRequest) -> Agent:
        changes = AgentUpdate(**request.model_dump(exclude_unset=True))
        updated = await self.agents_repo.update(agent_id, changes)
        if updated is None:
            raise AgentNotFoundError(agent_id)
        self.logger.info("AgentService.metadata_updated", agent_id=agent_id, fields=sorted(changes.model_fields_set))
        await self.publisher.publish("agents", "UPDATE", {"agent_id": agent_id})
        return updated

    async def _require(self, agent_id: str) -> Agent:
        agent = await self.agents_repo.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    async def _toggle_live(self, agent: Agent) -> AgentStatus:
        url = f"{(agent.base_url or '').rstrip('/')}{self.settings.probe_toggle_path}"
        try:
            async with httpx.AsyncClient(timeout=self.settings.probe_timeout_seconds, transport=self.transport) as client:
                response = await client.post(url)
                response.raise_for_status()
                return AgentStatus(response.json()["status"])
        except Exception as exc:
            self.logger.warning("AgentService.live_toggle_failed", agent_id=agent.agent_id, error=str(exc))
            raise AgentUnreachableError(f"Agent toggle failed: {exc}") from exc
