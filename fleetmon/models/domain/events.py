from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from fleetmon.models.domain.agent import AgentStatus

HEARTBEAT_TAG = "heartbeat"
STATUS_CHANGE_TAG = "status_change"
ACTIVITY_LOG_TAG = "activity_log"


class ObligationKind(str, Enum):
    HEARTBEAT = "heartbeat"
    STATUS_CHANGE = "status_change"
    COUNTED_STAT = "counted_stat"
    ACTIVITY_LOG = "activity_log"


class HeartbeatEvent(BaseModel):
    kind: Literal[ObligationKind.HEARTBEAT] = ObligationKind.HEARTBEAT
    agent_id: str
    model: Optional[str] = None
    base_url: Optional[str] = None
    account: Optional[str] = None
    api_key: Optional[str] = None
    response_time_ms: float = 0.0

    model_config = ConfigDict(frozen=True)


class StatusChangeEvent(BaseModel):
    kind: Literal[ObligationKind.STATUS_CHANGE] = ObligationKind.STATUS_CHANGE
    agent_id: str
    status: AgentStatus

    model_config = ConfigDict(frozen=True)


class CountedStatEvent(BaseModel):
    kind: Literal[ObligationKind.COUNTED_STAT] = ObligationKind.COUNTED_STAT
    agent_id: str
    api_type: str
    response_time_ms: float = 0.0
    is_error: bool = False
    should_count_api: bool = True
    should_count_task: bool = True

    model_config = ConfigDict(frozen=True)


class ActivityLogEvent(BaseModel):
    kind: Literal[ObligationKind.ACTIVITY_LOG] = ObligationKind.ACTIVITY_LOG
    agent_id: str
    action: str
    log_type: str
    status: str
    response_time_ms: float = 0.0
    user_name: Optional[str] = None
    image_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)


TelemetryEvent = Annotated[
    Union[HeartbeatEvent, StatusChangeEvent, CountedStatEvent, ActivityLogEvent],
    Field(discriminator="kind"),
]


class Classification(BaseModel):
    """Obligations derived from one payload, plus sub-obligations that were dropped."""

    events: List[TelemetryEvent] = Field(default_factory=list)
    rejected: List[str] = Field(default_factory=list)

    def kinds(self) -> List[ObligationKind]:
        return [event.kind for event in self.events]
