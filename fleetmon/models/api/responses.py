from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


class IngestResponse(BaseModel):
    success: bool
    message: Optional[str] = None


class ManualCheckResponse(BaseModel):
    success: bool
    message: Optional[str] = None


class BreakdownCounts(_CamelModel):
    today: int
    total: int


class DailyHistoryItem(_CamelModel):
    date: str
    tasks: int
    api_calls: int
    breakdown: Dict[str, int] = Field(default_factory=dict)


class HourlyItem(_CamelModel):
    hour: str
    tasks: int
    api_calls: int


class ActivityLogItem(_CamelModel):
    id: int
    agent_id: str
    agent: Optional[str] = None
    action: str
    type: str
    status: str
    timestamp: datetime
    response_time: float
    user_name: Optional[str] = None
    image_url: Optional[str] = None


class AgentView(_CamelModel):
    id: str
    name: Optional[str]
    client_id: Optional[str]
    client_name: Optional[str]
    model: Optional[str]
    account: Optional[str]
    base_url: Optional[str]
    status: str
    api_status: str
    created_at: Optional[datetime]
    last_active: Optional[datetime]
    total_api_calls: int
    today_api_calls: int
    total_tasks: int
    today_tasks: int
    error_rate: float
    avg_response_time: float
    is_live_agent: bool
    api_breakdown: Dict[str, BreakdownCounts] = Field(default_factory=dict)
    daily_history: List[DailyHistoryItem] = Field(default_factory=list)
    hourly_stats: List[HourlyItem] = Field(default_factory=list)
    activity_logs: List[ActivityLogItem] = Field(default_factory=list)


class ToggleResponse(BaseModel):
    success: bool
    status: str


class LoginResponse(BaseModel):
    success: bool
    token: str
    expires_in: int
    username: str


class SessionResponse(BaseModel):
    authenticated: bool
    username: Optional[str] = None
