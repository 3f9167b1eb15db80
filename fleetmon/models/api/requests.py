from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class StatsPayload(BaseModel):
    """
    Inbound telemetry body for POST /v1/stats.

    `logAction` and `logMessage` are accepted interchangeably and collapsed
    into `log_action` here; nothing downstream looks at `logMessage`.
    """

    agent_id: Optional[str] = Field(None, alias="agentId")
    api_type: Optional[str] = Field(None, alias="apiType")
    response_time: float = Field(0.0, alias="responseTime")
    is_error: bool = Field(False, alias="isError")
    should_count_api: bool = Field(True, alias="shouldCountApi")
    should_count_task: bool = Field(True, alias="shouldCountTask")

    model: Optional[str] = None
    base_url: Optional[str] = Field(None, alias="baseUrl")
    account: Optional[str] = None
    api_key: Optional[str] = Field(None, alias="apiKey")
    status: Optional[str] = None

    log_action: Optional[str] = Field(None, alias="logAction")
    log_type: Optional[str] = Field(None, alias="logType")
    user_name: Optional[str] = Field(None, alias="userName")
    image_url: Optional[str] = Field(None, alias="imageUrl")

    model_config = ConfigDict(populate_by_name=True, extra="ignore", protected_namespaces=())

    @model_validator(mode="before")
    @classmethod
    def _collapse_log_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        candidates = [data.pop("logAction", None), data.pop("log_action", None), data.pop("logMessage", None)]
        data["logAction"] = next((c for c in candidates if isinstance(c, str) and c.strip()), None)
        return data

    @field_validator("response_time", "is_error", "should_count_api", "should_count_task", mode="before")
    @classmethod
    def _null_means_default(cls, value: Any, info) -> Any:  # type: ignore[no-untyped-def]
        if value is None:
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("agent_id", "api_type", "log_action", "log_type", "status", mode="before")
    @classmethod
    def _blank_means_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ManualCheckRequest(BaseModel):
    agent_id: Optional[str] = Field(None, alias="agentId")

    model_config = ConfigDict(populate_by_name=True)


class AgentUpdateRequest(BaseModel):
    name: Optional[str] = None
    model: Optional[str] = None
    account: Optional[str] = None

    model_config = ConfigDict(extra="forbid", protected_namespaces=())


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
