"""
Day-rollover monitor.

Each monitor owns a "last checked date" marker. When the canonical date moves
past the marker it asks the store to zero today counters, moves the marker
forward whether or not that worked, and tells dashboards to refetch. Markers
are deliberately not shared between processes: the store-side reset is
idempotent per day, so racing monitors are harmless.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol

from fleetmon.core.config import get_settings
from fleetmon.core.logging import get_logger
from fleetmon.core.metrics import ROLLOVER_RESETS
from fleetmon.core.utils import canonical_today, utc_now
from fleetmon.services.realtime import RealtimePublisher
from fleetmon.services.stats_service import StatsAggregator

ResetFn = Callable[[str], Awaitable[int]]
NotifyFn = Callable[[str], Awaitable[None]]


class RolloverOutcome(str, Enum):
    INITIALISED = "initialised"
    UNCHANGED = "unchanged"
    RESET = "reset"
    RESET_FAILED = "reset_failed"
    MARKER_AHEAD = "marker_ahead"


class MarkerStore(Protocol):
    def load(self) -> Optional[str]: ...

    def save(self, day: str) -> None: ...


class InMemoryMarkerStore:
    def __init__(self, initial: Optional[str] = None) -> None:
        self._value = initial

    def load(self) -> Optional[str]:
        return self._value

    def save(self, day: str) -> None:
        self._value = day


class FileMarkerStore:
    """Marker persisted as a small JSON file local to this process."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.logger = get_logger("FileMarkerStore")

    def load(self) -> Optional[str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            self.logger.warning("FileMarkerStore.unreadable", path=str(self.path), error=str(exc))
            return None
        value = data.get("last_checked_date") if isinstance(data, dict) else None
        return value if isinstance(value, str) else None

    def save(self, day: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps({"last_checked_date": day}), encoding="utf-8")
        tmp.replace(self.path)


class DayRolloverMonitor:
    def __init__(
        self,
        marker: MarkerStore,
        reset: ResetFn,
        *,
        notify: Optional[NotifyFn] = None,
        tz_name: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.marker = marker
        self.reset = reset
        self.notify = notify
        self.tz_name = tz_name or get_settings().canonical_timezone
        self.clock = clock
        self.logger = get_logger("DayRolloverMonitor")

    async def check(self) -> RolloverOutcome:
        today = canonical_today(self.tz_name, self.clock())
        last = self.marker.load()

        if last is None:
            # First run: remember the day, never reset.
            self.marker.save(today)
            self.logger.info("Rollover.initialised", date=today)
            return RolloverOutcome.INITIALISED

        if last == today:
            return RolloverOutcome.UNCHANGED

        if last > today:
            # Clock went backwards or the marker was written elsewhere; pull it back, never reset.
            self.marker.save(today)
            self.logger.warning("Rollover.marker_ahead", marker=last, date=today)
            return RolloverOutcome.MARKER_AHEAD

        outcome = RolloverOutcome.RESET
        try:
            reset_agents = await self.reset(today)
            self.logger.info("Rollover.reset", previous=last, date=today, agents_reset=reset_agents)
        except Exception as exc:
            outcome = RolloverOutcome.RESET_FAILED
            self.logger.error("Rollover.reset_failed", previous=last, date=today, error=str(exc))

        # Advance even on failure; a missed reset heals on the next event or day.
        self.marker.save(today)
        ROLLOVER_RESETS.labels(outcome.value).inc()

        if self.notify is not None:
            try:
                await self.notify(today)
            except Exception as exc:
                self.logger.warning("Rollover.notify_failed", date=today, error=str(exc))
        return outcome


def build_rollover_monitor(
    marker: Optional[MarkerStore] = None,
    aggregator: Optional[StatsAggregator] = None,
    publisher: Optional[RealtimePublisher] = None,
) -> DayRolloverMonitor:
    settings = get_settings()
    aggregator = aggregator or StatsAggregator()
    publisher = publisher or RealtimePublisher()

    async def _invalidate(day: str) -> None:
        await publisher.publish("agents", "ROLLOVER", {"date": day})

    return DayRolloverMonitor(
        marker or FileMarkerStore(settings.rollover_marker_path),
        aggregator.reset_today_counters,
        notify=_invalidate,
        tz_name=settings.canonical_timezone,
    )
