from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from fleetmon.core.config import get_settings
from fleetmon.core.logging import get_logger
from fleetmon.core.redis_client import get_redis_client
from fleetmon.core.utils import canonical_today
from fleetmon.db.mongo import get_client

router = APIRouter(tags=["health"])
logger = get_logger("HealthRoute")


async def _ping_store() -> str:
    try:
        await get_client().admin.command("ping")
    except Exception as exc:
        logger.warning("Health.store_down", error=str(exc))
        return "down"
    return "up"


async def _ping_bus() -> str:
    try:
        await get_redis_client().ping()
    except Exception as exc:
        logger.warning("Health.bus_down", error=str(exc))
        return "down"
    return "up"


@router.get("/health", response_class=PlainTextResponse)
async def health_check() -> str:
    """Own liveness plus a ping of the store and the realtime bus; never fails itself."""
    settings = get_settings()
    store = await _ping_store()
    bus = await _ping_bus()
    today = canonical_today(settings.canonical_timezone)
    return f"ok | store={store} | realtime={bus} | today={today} | env={settings.environment}"
