"""
Aggregation-pipeline update builders for the counter documents.

Each builder returns the update for exactly one document so that the store
applies it atomically; nothing here reads a counter back into Python. Today
counters carry the canonical date they belong to, and a counter whose date is
stale restarts from the increment instead of adding to yesterday's value.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from fleetmon.models.domain.agent import AgentStatus, ApiStatus


def _field(name: str) -> str:
    return f"${name}"


def _total(field: str, inc: float) -> Dict[str, Any]:
    return {"$add": [{"$ifNull": [_field(field), 0]}, inc]}


def _dated(field: str, inc: float, stamp_field: str, today: str) -> Dict[str, Any]:
    return {
        "$cond": [
            {"$eq": [_field(stamp_field), today]},
            {"$add": [{"$ifNull": [_field(field), 0]}, inc]},
            inc,
        ]
    }


def _ratio(numerator: str, denominator: str) -> Dict[str, Any]:
    return {
        "$cond": [
            {"$gt": [_field(denominator), 0]},
            {"$divide": [_field(numerator), _field(denominator)]},
            0,
        ]
    }


def agent_counted_stat_update(
    *,
    today: str,
    now: datetime,
    response_time_ms: float,
    is_error: bool,
    count_api: bool,
    count_task: bool,
) -> List[Dict[str, Any]]:
    api_inc = 1 if count_api else 0
    task_inc = 1 if count_task else 0
    return [
        {
            "$set": {
                "total_api_calls": _total("total_api_calls", api_inc),
                "today_api_calls": _dated("today_api_calls", api_inc, "counters_date", today),
                "total_tasks": _total("total_tasks", task_inc),
                "today_tasks": _dated("today_tasks", task_inc, "counters_date", today),
                "total_response_time": _total("total_response_time", response_time_ms),
                "response_count": _total("response_count", 1),
                "error_count": _total("error_count", 1 if is_error else 0),
                "last_active": now,
                "created_at": {"$ifNull": ["$created_at", now]},
                "status": {"$ifNull": ["$status", AgentStatus.OFFLINE.value]},
                "api_status": {"$ifNull": ["$api_status", ApiStatus.UNKNOWN.value]},
            }
        },
        # Second stage sees the values written by the first one.
        {
            "$set": {
                "counters_date": today,
                "avg_response_time": _ratio("total_response_time", "response_count"),
                "error_rate": _ratio("error_count", "response_count"),
            }
        },
    ]


def breakdown_counted_update(*, today: str) -> List[Dict[str, Any]]:
    return [
        {
            "$set": {
                "total_count": _total("total_count", 1),
                "today_count": _dated("today_count", 1, "counters_date", today),
            }
        },
        {"$set": {"counters_date": today}},
    ]


def daily_counted_update(*, api_type: str, count_api: bool, count_task: bool) -> Dict[str, Any]:
    inc: Dict[str, int] = {"tasks": 1 if count_task else 0, "api_calls": 1 if count_api else 0}
    if count_api:
        inc[f"breakdown.{api_type}"] = 1
    return {"$inc": inc}


def hourly_counted_update(*, today: str, count_api: bool, count_task: bool) -> List[Dict[str, Any]]:
    # Hour rows are keyed by hour-of-day only; updated_at decides whether the
    # row still holds today's counts or must be claimed afresh.
    return [
        {
            "$set": {
                "tasks": _dated("tasks", 1 if count_task else 0, "updated_at", today),
                "api_calls": _dated("api_calls", 1 if count_api else 0, "updated_at", today),
            }
        },
        {"$set": {"updated_at": today}},
    ]


def stale_counters_filter(today: str) -> Dict[str, Any]:
    return {"counters_date": {"$ne": today}}


def agent_reset_update(today: str) -> Dict[str, Any]:
    return {"$set": {"today_api_calls": 0, "today_tasks": 0, "counters_date": today}}


def breakdown_reset_update(today: str) -> Dict[str, Any]:
    return {"$set": {"today_count": 0, "counters_date": today}}
