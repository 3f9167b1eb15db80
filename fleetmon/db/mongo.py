from __future__ import annotations

import asyncio
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from fleetmon.core.config import get_settings
from fleetmon.core.logging import get_logger

_logger = get_logger("Mongo")

_mongo_client: Optional[AsyncIOMotorClient] = None
_mongo_client_loop: Optional[asyncio.AbstractEventLoop] = None
_mongo_db: Optional[AsyncIOMotorDatabase] = None


def get_client() -> AsyncIOMotorClient:
    """
    Return a process-wide AsyncIOMotorClient.

    The client is bound to the loop that was running when it was created. The
    Celery worker and pytest both create more than one loop over a process
    lifetime, so a client whose loop has been closed is transparently
    replaced.
    """
    global _mongo_client, _mongo_client_loop, _mongo_db

    try:
        current_loop = asyncio.get_running_loop()
    except RuntimeError:
        # Called outside of an active event loop (e.g. at import time).
        current_loop = None

    if _mongo_client is None:
        settings = get_settings()
        _logger.debug("Mongo client initialising", db_name=settings.mongo_db_name, has_loop=current_loop is not None)
        _mongo_client = AsyncIOMotorClient(settings.mongo_uri, tz_aware=True)
        _mongo_client_loop = current_loop
        return _mongo_client

    if _mongo_client_loop is not None and _mongo_client_loop.is_closed():
        _logger.warning("Mongo client event loop closed; reinitialising client")
        _mongo_client.close()
        _mongo_client = AsyncIOMotorClient(get_settings().mongo_uri, tz_aware=True)
        _mongo_client_loop = current_loop
        _mongo_db = None

    return _mongo_client


def get_database() -> AsyncIOMotorDatabase:
    global _mongo_db

    client = get_client()
    if _mongo_db is None or getattr(_mongo_db, "client", None) is not client:
        settings = get_settings()
        _logger.debug("Mongo database binding (or rebinding)", db_name=settings.mongo_db_name)
        _mongo_db = client[settings.mongo_db_name]

    return _mongo_db


async def ensure_transactions_supported(client: Optional[AsyncIOMotorClient] = None) -> None:
    """
    Refuse to start against a standalone mongod.

    Counter writes run in multi-document transactions, which MongoDB only
    accepts on a replica set member or through mongos. A standalone server
    would reject every transaction and each counted stat would be dropped.
    """
    client = client or get_client()
    hello = await client.admin.command("hello")
    if hello.get("setName") or hello.get("msg") == "isdbgrid":
        _logger.debug("Mongo deployment supports transactions", set_name=hello.get("setName"))
        return
    _logger.error("Mongo deployment does not support transactions", db_name=get_settings().mongo_db_name)
    raise RuntimeError("MongoDB must run as a replica set (or behind mongos) to support transactions")
