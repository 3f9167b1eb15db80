from __future__ import annotations

from typing import List

from fleetmon.core.errors import InvalidEventError
from fleetmon.models.api.requests import StatsPayload
from fleetmon.models.domain.agent import AgentStatus
from fleetmon.models.domain.events import (
    ACTIVITY_LOG_TAG,
    HEARTBEAT_TAG,
    STATUS_CHANGE_TAG,
    ActivityLogEvent,
    Classification,
    CountedStatEvent,
    HeartbeatEvent,
    StatusChangeEvent,
    TelemetryEvent,
)

QUOTE_PREFIX = "Quote:"
QUOTE_QUALIFIER = "Calculated"

_VALID_STATUSES = {status.value for status in AgentStatus}


def qualify_quote_action(action: str) -> str:
    """Prefix price-quote actions with the qualifier; already qualified text is left alone."""
    if action.startswith(QUOTE_PREFIX):
        return f"{QUOTE_QUALIFIER} {action}"
    return action


def _validate_api_type(api_type: str) -> None:
    # The label becomes a key of the daily breakdown map.
    if "." in api_type or api_type.startswith("$"):
        raise InvalidEventError(f"apiType '{api_type}' must not contain '.' or start with '$'.")


def _require_agent(payload: StatsPayload, what: str) -> str:
    if not payload.agent_id:
        raise InvalidEventError(f"agentId is required for {what}.")
    return payload.agent_id


def classify(payload: StatsPayload) -> Classification:
    """
    Turn one telemetry payload into the obligations it carries.

    The tag is compared once against the three sentinels. Any other tag is a
    counted stat keyed by that tag. The log action is checked independently,
    so one payload may yield a counted stat and a log entry together.
    """
    events: List[TelemetryEvent] = []
    rejected: List[str] = []
    tag = payload.api_type

    if tag == HEARTBEAT_TAG:
        events.append(
            HeartbeatEvent(
                agent_id=_require_agent(payload, "a heartbeat"),
                model=payload.model,
                base_url=payload.base_url,
                account=payload.account,
                api_key=payload.api_key,
                response_time_ms=payload.response_time,
            )
        )
        # The heartbeat writes its own activity entry.
        return Classification(events=events)

    if tag == STATUS_CHANGE_TAG:
        agent_id = _require_agent(payload, "a status change")
        if payload.status not in _VALID_STATUSES:
            raise InvalidEventError(
                f"status must be one of {sorted(_VALID_STATUSES)}, got {payload.status!r}."
            )
        events.append(StatusChangeEvent(agent_id=agent_id, status=AgentStatus(payload.status)))
        return Classification(events=events)

    if tag is not None and tag != ACTIVITY_LOG_TAG:
        _validate_api_type(tag)
        events.append(
            CountedStatEvent(
                agent_id=_require_agent(payload, "a counted stat"),
                api_type=tag,
                response_time_ms=payload.response_time,
                is_error=payload.is_error,
                should_count_api=payload.should_count_api,
                should_count_task=payload.should_count_task,
            )
        )

    if payload.log_action:
        if not payload.agent_id:
            rejected.append("activity_log: agentId missing, log entry not persisted")
        else:
            events.append(
                ActivityLogEvent(
                    agent_id=payload.agent_id,
                    action=qualify_quote_action(payload.log_action),
                    log_type=_log_type(payload),
                    status=_log_status(payload),
                    response_time_ms=payload.response_time,
                    user_name=payload.user_name,
                    image_url=payload.image_url,
                )
            )

    return Classification(events=events, rejected=rejected)


def _log_type(payload: StatsPayload) -> str:
    if payload.log_type:
        return payload.log_type
    if payload.api_type in (None, ACTIVITY_LOG_TAG):
        return "log"
    return payload.api_type


def _log_status(payload: StatsPayload) -> str:
    if payload.log_type:
        return payload.log_type
    return "error" if payload.is_error else "success"
