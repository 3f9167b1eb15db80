from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from fleetmon.db.mongo import get_database
from fleetmon.models.domain.agent import Agent, AgentStatus, AgentUpdate, ApiStatus


def _insert_defaults(now: datetime) -> Dict[str, Any]:
    return {
        "created_at": now,
        "api_status": ApiStatus.UNKNOWN.value,
        "total_api_calls": 0,
        "today_api_calls": 0,
        "total_tasks": 0,
        "today_tasks": 0,
        "error_count": 0,
        "error_rate": 0.0,
        "avg_response_time": 0.0,
        "total_response_time": 0.0,
        "response_count": 0,
    }


class AgentsRepository:
    def __init__(self, db: Optional[AsyncIOMotorDatabase] = None) -> None:
        self._db: AsyncIOMotorDatabase = db or get_database()
        self._collection: AsyncIOMotorCollection = self._db["agents"]

    async def ensure_indexes(self) -> None:
        await self._collection.create_index("agent_id", unique=True)
        await self._collection.create_index("client_id")

    async def get(self, agent_id: str) -> Optional[Agent]:
        doc = await self._collection.find_one({"agent_id": agent_id})
        return Agent(**doc) if doc else None

    async def list_all(self) -> List[Agent]:
        cursor = self._collection.find({}).sort([("sort_order", 1), ("agent_id", 1)])
        return [Agent(**doc) async for doc in cursor]

    async def record_heartbeat(
        self,
        agent_id: str,
        *,
        now: datetime,
        metadata: Dict[str, Optional[str]],
    ) -> None:
        fields: Dict[str, Any] = {"last_active": now, "status": AgentStatus.ONLINE.value}
        # Only propagate metadata the agent actually sent.
        fields.update({key: value for key, value in metadata.items() if value})
        await self._collection.update_one(
            {"agent_id": agent_id},
            {"$set": fields, "$setOnInsert": _insert_defaults(now)},
            upsert=True,
        )

    async def set_status(self, agent_id: str, status: AgentStatus, *, now: datetime) -> None:
        defaults = _insert_defaults(now)
        await self._collection.update_one(
            {"agent_id": agent_id},
            {"$set": {"status": status.value, "last_active": now}, "$setOnInsert": defaults},
            upsert=True,
        )

    async def update(self, agent_id: str, update: AgentUpdate) -> Optional[Agent]:
        update_doc = {
            key: value.value if isinstance(value, Enum) else value
            for key, value in update.model_dump(exclude_unset=True).items()
        }
        if not update_doc:
            return await self.get(agent_id)

        doc = await self._collection.find_one_and_update(
            {"agent_id": agent_id},
            {"$set": update_doc},
            return_document=ReturnDocument.AFTER,
        )
        return Agent(**doc) if doc else None
