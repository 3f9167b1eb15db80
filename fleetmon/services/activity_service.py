"""
Activity logger.

Appends immutable rows to the activity feed. There is no dedup and no merge;
two identical calls produce two rows ordered by their store-assigned id.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fleetmon.core.logging import get_logger
from fleetmon.core.utils import utc_now
from fleetmon.db.repositories.activity_logs_repo import ActivityLogsRepository
from fleetmon.models.domain.activity_log import ActivityLog, ActivityLogCreate
from fleetmon.services.realtime import RealtimePublisher


class ActivityLogger:
    def __init__(
        self,
        logs_repo: Optional[ActivityLogsRepository] = None,
        publisher: Optional[RealtimePublisher] = None,
    ) -> None:
        self.logs_repo = logs_repo or ActivityLogsRepository()
        self.publisher = publisher or RealtimePublisher()
        self.logger = get_logger("ActivityLogger")

    async def append_log(
        self,
        agent_id: Optional[str],
        action: str,
        log_type: str,
        status: str,
        *,
        timestamp: Optional[datetime] = None,
        response_time_ms: float = 0.0,
        user_name: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> Optional[ActivityLog]:
        """
        Append one entry. Entries without an agent are refused locally and
        None is returned; the HTTP caller is not told.
        """
        if not agent_id:
            self.logger.warning("ActivityLogger.orphan_rejected", action=action, type=log_type)
            return None

        entry = ActivityLogCreate(
            agent_id=agent_id,
            action=action,
            type=log_type,
            status=status,
            timestamp=timestamp or utc_now(),
            response_time=response_time_ms,
            user_name=user_name,
            image_url=image_url,
        )
        log = await self.logs_repo.append(entry)
        self.logger.info("ActivityLogger.appended", agent_id=agent_id, log_id=log.log_id, type=log_type)
        await self.publisher.publish("activity_logs", "INSERT", log.model_dump(mode="json"))
        return log

    async def recent(self, *, limit: int = 100, agent_id: Optional[str] = None) -> List[ActivityLog]:
        return await self.logs_repo.list_recent(limit=limit, agent_id=agent_id)
