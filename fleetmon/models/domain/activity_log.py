from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ActivityLog(BaseModel):
    log_id: int  # store-assigned, monotonic; secondary sort key
    agent_id: str
    action: str
    type: str
    status: str
    timestamp: datetime
    response_time: float = 0.0
    user_name: Optional[str] = None
    image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, extra="ignore")


class ActivityLogCreate(BaseModel):
    agent_id: str
    action: str
    type: str
    status: str
    timestamp: datetime
    response_time: float = 0.0
    user_name: Optional[str] = None
    image_url: Optional[str] = None
