from __future__ import annotations

from typing import Optional, Tuple

import httpx
from pydantic import BaseModel
from pymongo.errors import PyMongoError

from fleetmon.core.config import get_settings
from fleetmon.core.errors import AgentNotFoundError, StoreError
from fleetmon.core.logging import get_logger
from fleetmon.core.metrics import PROBE_RESULTS
from fleetmon.core.utils import utc_now
from fleetmon.db.repositories.agents_repo import AgentsRepository
from fleetmon.models.domain.agent import Agent, AgentStatus, AgentUpdate, ApiStatus
from fleetmon.services.ingestion_service import IngestionService
from fleetmon.services.realtime import RealtimePublisher


class ProbeResult(BaseModel):
    success: bool
    status: Optional[AgentStatus] = None
    api_status: Optional[ApiStatus] = None
    message: Optional[str] = None


class HealthProber:
    """
    Operator-triggered reachability check against an agent's own base URL.

    Liveness is checked first and verification only after it succeeds; the
    two calls are never issued together. Network errors, timeouts and non-2xx
    answers are folded into the agent's status instead of being raised.
    """

    def __init__(
        self,
        agents_repo: Optional[AgentsRepository] = None,
        ingestion: Optional[IngestionService] = None,
        publisher: Optional[RealtimePublisher] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.agents_repo = agents_repo or AgentsRepository()
        self.ingestion = ingestion or IngestionService()
        self.publisher = publisher or RealtimePublisher()
        self.transport = transport
        self.settings = get_settings()
        self.logger = get_logger("HealthProber")

    async def probe(self, agent_id: str) -> ProbeResult:
        agent = await self._load_agent(agent_id)

        if not agent.base_url:
            PROBE_RESULTS.labels("mock").inc()
            self.logger.info("HealthProber.mock_agent", agent_id=agent_id)
            return ProbeResult(success=True, message="Mock check pass")

        status, api_status = await self._check(agent)

        try:
            await self.agents_repo.update(
                agent_id,
                AgentUpdate(status=status, api_status=api_status, last_active=utc_now()),
            )
        except PyMongoError as exc:
            raise StoreError(f"Failed to persist probe result: {exc}") from exc
        await self.publisher.publish(
            "agents", "UPDATE", {"agent_id": agent_id, "status": status.value, "api_status": api_status.value}
        )

        healthy = api_status is ApiStatus.HEALTHY
        PROBE_RESULTS.labels(api_status.value).inc()
        self.logger.info("HealthProber.completed", agent_id=agent_id, status=status.value, api_status=api_status.value)

        if healthy:
            try:
                await self.ingestion.emit_heartbeat(agent_id)
            except Exception as exc:
                self.logger.warning("HealthProber.heartbeat_failed", agent_id=agent_id, error=str(exc))

        return ProbeResult(success=healthy, status=status, api_status=api_status)

    async def _load_agent(self, agent_id: str) -> Agent:
        try:
            agent = await self.agents_repo.get(agent_id)
        except PyMongoError as exc:
            raise StoreError(f"Failed to load agent: {exc}") from exc
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    async def _check(self, agent: Agent) -> Tuple[AgentStatus, ApiStatus]:
        base_url = (agent.base_url or "").rstrip("/")
        async with httpx.AsyncClient(timeout=self.settings.probe_timeout_seconds, transport=self.transport) as client:
            try:
                health = await client.get(f"{base_url}{self.settings.probe_health_path}")
            except Exception as exc:
                self.logger.warning("HealthProber.liveness_error", agent_id=agent.agent_id, error=str(exc))
                return AgentStatus.OFFLINE, ApiStatus.ERROR
            if not health.is_success:
                self.logger.warning("HealthProber.liveness_failed", agent_id=agent.agent_id, status_code=health.status_code)
                return AgentStatus.OFFLINE, ApiStatus.ERROR

            try:
                verify = await client.post(f"{base_url}{self.settings.probe_verify_path}")
                if not verify.is_success:
                    self.logger.warning(
                        "HealthProber.verify_failed", agent_id=agent.agent_id, status_code=verify.status_code
                    )
                    return AgentStatus.ONLINE, ApiStatus.ERROR
                body = verify.json()
            except Exception as exc:
                self.logger.warning("HealthProber.verify_error", agent_id=agent.agent_id, error=str(exc))
                return AgentStatus.OFFLINE, ApiStatus.ERROR

        verified = isinstance(body, dict) and body.get("success") is True
        return AgentStatus.ONLINE, ApiStatus.HEALTHY if verified else ApiStatus.ERROR
