from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AgentStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    PROCESSING = "processing"
    ERROR = "error"


class ApiStatus(str, Enum):
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    ERROR = "error"


class Agent(BaseModel):
    agent_id: str
    name: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    model: Optional[str] = None
    account: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None  # present => live agent, reachable for probes

    status: AgentStatus = AgentStatus.OFFLINE
    api_status: ApiStatus = ApiStatus.UNKNOWN
    created_at: Optional[datetime] = None
    last_active: Optional[datetime] = None

    total_api_calls: int = 0
    today_api_calls: int = 0
    total_tasks: int = 0
    today_tasks: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    avg_response_time: float = 0.0
    total_response_time: float = 0.0
    response_count: int = 0
    # Canonical date the today_* counters belong to.
    counters_date: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    @property
    def is_live(self) -> bool:
        return bool(self.base_url)

    def display_label(self) -> str:
        return self.name or self.client_name or self.agent_id


class ApiBreakdown(BaseModel):
    agent_id: str
    api_type: str
    today_count: int = 0
    total_count: int = 0
    counters_date: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class DailyStat(BaseModel):
    agent_id: str
    date: str
    tasks: int = 0
    api_calls: int = 0
    breakdown: Dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")


class HourlyStat(BaseModel):
    agent_id: str
    hour: str  # "00".."23" in the canonical timezone
    tasks: int = 0
    api_calls: int = 0
    updated_at: Optional[str] = None  # canonical date the counts belong to

    model_config = ConfigDict(extra="ignore")

    def is_for(self, day: str) -> bool:
        return self.updated_at == day


class AgentUpdate(BaseModel):
    name: Optional[str] = None
    model: Optional[str] = None
    account: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    status: Optional[AgentStatus] = None
    api_status: Optional[ApiStatus] = None
    last_active: Optional[datetime] = None
