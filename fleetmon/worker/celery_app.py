from celery import Celery

from fleetmon.core.config import Settings, get_settings
from fleetmon.core.logging import get_logger


logger = get_logger("CeleryApp")


def _keyprefix(settings: Settings) -> str:
    # Hash tag keeps every Celery key in one slot on a clustered Redis.
    base = settings.app_name.strip() or "celery"
    return f"{{{base}}}."


def _create_celery_app() -> Celery:
    """
    Worker process for periodic day-rollover checks and queued health probes.

    Beat fires `check_day_rollover` on a fixed interval; the worker owns the
    rollover marker, so run exactly one beat per deployment.
    """
    settings = get_settings()
    prefix = _keyprefix(settings)

    app = Celery(
        "fleetmon_worker",
        broker=settings.celery_broker,
        backend=settings.celery_backend,
        include=["fleetmon.worker.tasks"],
    )

    app.conf.update(
        task_default_queue="fleet_monitor",
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_time_limit=120,
        task_soft_time_limit=90,
        timezone=settings.canonical_timezone,
        beat_schedule={
            "check-day-rollover": {
                "task": "check_day_rollover",
                "schedule": float(settings.rollover_interval_seconds),
            },
        },
    )
    app.conf.broker_transport_options = {"global_keyprefix": prefix}
    app.conf.result_backend_transport_options = {"global_keyprefix": prefix}

    logger.info(
        "Celery app configured",
        broker=settings.celery_broker,
        backend=settings.celery_backend,
        default_queue=app.conf.task_default_queue,
        rollover_interval_seconds=settings.rollover_interval_seconds,
        global_keyprefix=prefix,
    )
    return app


celery_app = _create_celery_app()
