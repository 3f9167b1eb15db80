from functools import lru_cache
from typing import List, Optional

import logging
import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # General
    environment: str = Field("local", alias="ENVIRONMENT")
    app_name: str = Field("agent-fleet-monitor", alias="APP_NAME")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # MongoDB (aggregate store)
    mongo_uri: str = Field(..., alias="MONGO_URI")
    mongo_db_name: str = Field("agent-fleet-monitor", alias="MONGO_DB_NAME")

    # Redis / realtime / queue
    redis_url: str = Field(..., alias="REDIS_URL")
    realtime_channel: str = Field("dashboard_events", alias="REALTIME_CHANNEL")
    celery_broker_url: Optional[str] = Field(None, alias="CELERY_BROKER_URL")
    celery_result_backend: Optional[str] = Field(None, alias="CELERY_RESULT_BACKEND")

    # Canonical civil day
    canonical_timezone: str = Field("Asia/Seoul", alias="CANONICAL_TIMEZONE")
    rollover_interval_seconds: int = Field(60, alias="ROLLOVER_INTERVAL_SECONDS")
    rollover_marker_path: str = Field(".fleetmon/rollover-marker.json", alias="ROLLOVER_MARKER_PATH")

    # Health probe
    probe_timeout_seconds: float = Field(5.0, alias="PROBE_TIMEOUT_SECONDS")
    probe_health_path: str = Field("/health", alias="PROBE_HEALTH_PATH")
    probe_verify_path: str = Field("/verify", alias="PROBE_VERIFY_PATH")
    probe_toggle_path: str = Field("/agent-toggle", alias="PROBE_TOGGLE_PATH")

    # Security
    session_secret: str = Field(..., alias="SESSION_SECRET")
    session_ttl_hours: int = Field(168, alias="SESSION_TTL_HOURS")
    admin_username: str = Field(..., alias="ADMIN_USERNAME")
    admin_password: str = Field(..., alias="ADMIN_PASSWORD")
    api_keys: List[str] = Field(default_factory=list, alias="API_KEYS")

    # Observability
    prometheus_enabled: bool = Field(True, alias="PROMETHEUS_ENABLED")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    @property
    def celery_broker(self) -> str:
        if self.celery_broker_url:
            return self.celery_broker_url
        return self.redis_url

    @property
    def celery_backend(self) -> str:
        if self.celery_result_backend:
            return self.celery_result_backend
        return self.redis_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Centralised settings factory.

    Store credentials, the session signing secret and the administrative
    account are required. When any of them is missing we log a sanitised
    snapshot of what was found and re-raise, so the process refuses to serve
    instead of running half-configured.
    """
    try:
        return Settings()  # type: ignore[call-arg]
    except Exception as exc:
        # Use stdlib logging here to avoid circular imports with the structured logger.
        logging.error("Failed to initialise Settings from environment.", exc_info=exc)
        logging.error(
            "Settings env snapshot (sanitised)",
            extra={
                "ENVIRONMENT": os.getenv("ENVIRONMENT"),
                "MONGO_URI_present": bool(os.getenv("MONGO_URI")),
                "MONGO_DB_NAME": os.getenv("MONGO_DB_NAME"),
                "REDIS_URL_present": bool(os.getenv("REDIS_URL")),
                "SESSION_SECRET_present": bool(os.getenv("SESSION_SECRET")),
                "ADMIN_USERNAME_present": bool(os.getenv("ADMIN_USERNAME")),
                "ADMIN_PASSWORD_present": bool(os.getenv("ADMIN_PASSWORD")),
                "API_KEYS_raw_present": bool(os.getenv("API_KEYS")),
            },
        )
        raise
