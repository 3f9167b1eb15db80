# fleetmon/core/debug.py

from __future__ import annotations

from typing import Any, Dict

from fleetmon.core.config import Settings
from fleetmon.core.logging import get_logger


def _mask_secret(value: str | None) -> str:
    if not value:
        return "<empty>"
    # Expose only a small portion to confirm wiring without leaking full secrets.
    if len(value) <= 8:
        return "<redacted>"
    return f"{value[:3]}***{value[-3:]}"


def build_settings_debug_snapshot(settings: Settings) -> Dict[str, Any]:
    """
    Build a safe, non-sensitive snapshot of key runtime settings.
    """
    return {
        "environment": settings.environment,
        "app_name": settings.app_name,
        "log_level": settings.log_level,
        "mongo_db_name": settings.mongo_db_name,
        "redis_url_present": bool(settings.redis_url),
        "realtime_channel": settings.realtime_channel,
        "canonical_timezone": settings.canonical_timezone,
        "rollover_interval_seconds": settings.rollover_interval_seconds,
        "probe_timeout_seconds": settings.probe_timeout_seconds,
        "session_secret_masked": _mask_secret(settings.session_secret),
        "admin_username": settings.admin_username,
        "admin_password_masked": _mask_secret(settings.admin_password),
        "api_keys_count": len(settings.api_keys),
        "prometheus_enabled": settings.prometheus_enabled,
        "celery_broker": settings.celery_broker,
    }


def log_settings_debug(settings: Settings) -> None:
    logger = get_logger("SettingsDebug")
    snapshot = build_settings_debug_snapshot(settings)
    logger.debug("Runtime settings snapshot", **snapshot)
