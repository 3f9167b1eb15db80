from __future__ import annotations

from typing import Any, Dict

from celery.signals import worker_ready

from fleetmon.core.errors import AppError
from fleetmon.core.logging import get_logger
from fleetmon.core.utils import start_timer, stop_timer
from fleetmon.services.health_prober import HealthProber
from fleetmon.services.rollover_service import build_rollover_monitor
from .celery_app import celery_app
from fleetmon.worker.async_runner import run_worker_coroutine


logger = get_logger("CeleryWorker")

_monitor = None


def _get_monitor():
    global _monitor
    if _monitor is None:
        _monitor = build_rollover_monitor()
    return _monitor


async def _check_day_rollover_async() -> str:
    timer = start_timer()
    outcome = await _get_monitor().check()
    logger.info("Worker.rollover.checked", outcome=outcome.value, duration_ms=int(stop_timer(timer)))
    return outcome.value


async def _probe_agent_async(agent_id: str) -> Dict[str, Any]:
    try:
        result = await HealthProber().probe(agent_id)
    except AppError as exc:
        logger.warning("Worker.probe.failed", agent_id=agent_id, code=exc.code, error=exc.message)
        return {"success": False, "error": exc.message, "code": exc.code}
    return result.model_dump(mode="json", exclude_none=True)


@celery_app.task(name="check_day_rollover")
def check_day_rollover() -> str:
    return run_worker_coroutine(_check_day_rollover_async())


@celery_app.task(name="probe_agent")
def probe_agent(agent_id: str) -> Dict[str, Any]:
    """Queued variant of the manual check, for probing the fleet off the request path."""
    return run_worker_coroutine(_probe_agent_async(agent_id))


@worker_ready.connect
def _initial_rollover_check(**_: Any) -> None:
    # Once at startup, then on the beat interval.
    check_day_rollover.delay()
