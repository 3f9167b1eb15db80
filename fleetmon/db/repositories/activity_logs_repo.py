from __future__ import annotations

from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from fleetmon.db.mongo import get_database
from fleetmon.models.domain.activity_log import ActivityLog, ActivityLogCreate


class ActivityLogsRepository:
    def __init__(self, db: Optional[AsyncIOMotorDatabase] = None) -> None:
        self._db: AsyncIOMotorDatabase = db or get_database()
        self._collection: AsyncIOMotorCollection = self._db["activity_logs"]
        self._sequences: AsyncIOMotorCollection = self._db["sequences"]

    async def ensure_indexes(self) -> None:
        await self._collection.create_index("log_id", unique=True)
        await self._collection.create_index([("agent_id", 1), ("log_id", -1)])
        await self._collection.create_index([("timestamp", -1), ("log_id", -1)])

    async def _next_log_id(self) -> int:
        doc = await self._sequences.find_one_and_update(
            {"_id": "activity_logs"},
            {"$inc": {"value": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc["value"])

    async def append(self, entry: ActivityLogCreate) -> ActivityLog:
        log = ActivityLog(log_id=await self._next_log_id(), **entry.model_dump())
        await self._collection.insert_one(log.model_dump())
        return log

    async def list_recent(self, *, limit: int = 100, agent_id: Optional[str] = None) -> List[ActivityLog]:
        query = {"agent_id": agent_id} if agent_id else {}
        if agent_id:
            sort = [("log_id", -1)]
        else:
            sort = [("timestamp", -1), ("log_id", -1)]
        cursor = self._collection.find(query).sort(sort).limit(limit)
        return [ActivityLog(**doc) async for doc in cursor]
