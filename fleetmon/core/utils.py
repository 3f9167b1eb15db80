from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def canonical_now(tz_name: str, now: datetime | None = None) -> datetime:
    """Current instant expressed in the canonical civil timezone."""
    instant = now or utc_now()
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(ZoneInfo(tz_name))


def canonical_today(tz_name: str, now: datetime | None = None) -> str:
    """YYYY-MM-DD of the canonical civil day, shared by every dashboard session."""
    return canonical_now(tz_name, now).date().isoformat()


def canonical_hour(tz_name: str, now: datetime | None = None) -> str:
    return f"{canonical_now(tz_name, now).hour:02d}"


def start_timer() -> float:
    return time.perf_counter()


def stop_timer(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0

