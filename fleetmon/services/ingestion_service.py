from __future__ import annotations

import asyncio
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from fleetmon.core.logging import get_logger
from fleetmon.core.metrics import INGESTED_OBLIGATIONS, SWALLOWED_FAILURES
from fleetmon.models.api.requests import StatsPayload
from fleetmon.models.domain.events import (
    ActivityLogEvent,
    CountedStatEvent,
    HeartbeatEvent,
    ObligationKind,
    StatusChangeEvent,
    TelemetryEvent,
)
from fleetmon.services.activity_service import ActivityLogger
from fleetmon.services.classifier import classify
from fleetmon.services.stats_service import StatsAggregator


class FailurePolicy(str, Enum):
    SWALLOW = "swallow"
    PROPAGATE = "propagate"


# Registration-type writes are reported back to the agent; counters and the
# activity feed are best-effort so agents never retry-storm the endpoint.
FAILURE_POLICY: Dict[ObligationKind, FailurePolicy] = {
    ObligationKind.HEARTBEAT: FailurePolicy.PROPAGATE,
    ObligationKind.STATUS_CHANGE: FailurePolicy.PROPAGATE,
    ObligationKind.COUNTED_STAT: FailurePolicy.SWALLOW,
    ObligationKind.ACTIVITY_LOG: FailurePolicy.SWALLOW,
}

HEARTBEAT_LOG_TYPE = "heartbeat"


class IngestResult(BaseModel):
    success: bool = True
    handled: List[ObligationKind] = Field(default_factory=list)
    swallowed: List[ObligationKind] = Field(default_factory=list)
    rejected: List[str] = Field(default_factory=list)


class IngestionService:
    def __init__(
        self,
        aggregator: Optional[StatsAggregator] = None,
        activity_logger: Optional[ActivityLogger] = None,
    ) -> None:
        self.aggregator = aggregator or StatsAggregator()
        self.activity_logger = activity_logger or ActivityLogger()
        self.logger = get_logger("IngestionService")

    async def ingest(self, payload: StatsPayload) -> IngestResult:
        classification = classify(payload)
        result = IngestResult(rejected=list(classification.rejected))
        for reason in classification.rejected:
            self.logger.warning("Ingestion.sub_obligation_rejected", agent_id=payload.agent_id, reason=reason)

        self.logger.info(
            "Ingestion.received",
            agent_id=payload.agent_id,
            api_type=payload.api_type,
            obligations=[kind.value for kind in classification.kinds()],
        )

        # Obligations of one payload have no ordering between them.
        outcomes = await asyncio.gather(*(self._run(event) for event in classification.events))
        for event, ok in zip(classification.events, outcomes):
            result.handled.append(event.kind)
            if not ok:
                result.swallowed.append(event.kind)
        return result

    async def emit_heartbeat(self, agent_id: str) -> None:
        """Run the heartbeat obligation for an agent without an inbound payload."""
        await self._run(HeartbeatEvent(agent_id=agent_id))

    async def _run(self, event: TelemetryEvent) -> bool:
        INGESTED_OBLIGATIONS.labels(event.kind.value).inc()
        try:
            await self._dispatch(event)
            return True
        except Exception as exc:
            if FAILURE_POLICY[event.kind] is FailurePolicy.PROPAGATE:
                self.logger.error("Ingestion.obligation_failed", kind=event.kind.value, agent_id=event.agent_id, error=str(exc))
                raise
            SWALLOWED_FAILURES.labels(event.kind.value).inc()
            self.logger.error("Ingestion.obligation_swallowed", kind=event.kind.value, agent_id=event.agent_id, error=str(exc))
            return False

    async def _dispatch(self, event: TelemetryEvent) -> None:
        if isinstance(event, HeartbeatEvent):
            await self.aggregator.record_heartbeat(event)
            await self._log_heartbeat(event)
        elif isinstance(event, StatusChangeEvent):
            await self.aggregator.change_status(event)
        elif isinstance(event, CountedStatEvent):
            await self.aggregator.apply_counted_stat(
                event.agent_id,
                event.api_type,
                event.response_time_ms,
                event.is_error,
                event.should_count_api,
                event.should_count_task,
            )
        elif isinstance(event, ActivityLogEvent):
            await self.activity_logger.append_log(
                event.agent_id,
                event.action,
                event.log_type,
                event.status,
                response_time_ms=event.response_time_ms,
                user_name=event.user_name,
                image_url=event.image_url,
            )

    async def _log_heartbeat(self, event: HeartbeatEvent) -> None:
        # The registration already succeeded; its feed entry is best-effort.
        try:
            agent = await self.aggregator.agents_repo.get(event.agent_id)
            label = agent.display_label() if agent else event.agent_id
            await self.activity_logger.append_log(
                event.agent_id,
                f"Heartbeat - {label}",
                HEARTBEAT_LOG_TYPE,
                "success",
                response_time_ms=event.response_time_ms,
            )
        except Exception as exc:
            SWALLOWED_FAILURES.labels("heartbeat_log").inc()
            self.logger.warning("Ingestion.heartbeat_log_failed", agent_id=event.agent_id, error=str(exc))
