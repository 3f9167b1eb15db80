from __future__ import annotations

from fleetmon.core.logging import get_logger
from fleetmon.db.repositories.activity_logs_repo import ActivityLogsRepository
from fleetmon.db.repositories.agents_repo import AgentsRepository
from fleetmon.db.repositories.stats_repo import StatsRepository


async def ensure_indexes() -> None:
    """Create the unique keys the upserts rely on (agent, agent+type, agent+date, agent+hour)."""
    logger = get_logger("MongoIndexes")
    await AgentsRepository().ensure_indexes()
    await StatsRepository().ensure_indexes()
    await ActivityLogsRepository().ensure_indexes()
    logger.info("MongoIndexes.ensured")
