from __future__ import annotations

import logging
import sys
from typing import Any, Dict

import structlog

from .config import get_settings


def _add_service(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    settings = get_settings()
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("env", settings.environment)
    return event_dict


def _get_structlog_processors(json_output: bool) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def configure_logging() -> None:
    """JSON lines on stdout; plain console output when running locally."""
    settings = get_settings()

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # Probe and toggle calls would otherwise log every request line.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=_get_structlog_processors(json_output=settings.environment != "local"),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name or get_settings().app_name)


def bind_request_context(
    logger: structlog.stdlib.BoundLogger,
    *,
    request_id: str | None = None,
    agent_id: str | None = None,
    api_type: str | None = None,
    endpoint: str | None = None,
) -> structlog.stdlib.BoundLogger:
    context = {
        "request_id": request_id,
        "agent_id": agent_id,
        "api_type": api_type,
        "endpoint": endpoint,
    }
    return logger.bind(**{key: value for key, value in context.items() if value})
