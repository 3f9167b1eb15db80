from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI, Request
from fastapi.middleware import Middleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from fleetmon.api.v1 import routes_agents, routes_auth, routes_events, routes_health, routes_stats
from fleetmon.core.config import get_settings
from fleetmon.core.debug import log_settings_debug
from fleetmon.core.errors import setup_exception_handlers
from fleetmon.core.logging import configure_logging, get_logger
from fleetmon.core.metrics import REQUEST_COUNT, REQUEST_LATENCY
from fleetmon.core.redis_client import close_redis_client
from fleetmon.core.security import configure_cors
from fleetmon.core.utils import generate_uuid
from fleetmon.db.indexes import ensure_indexes
from fleetmon.db.mongo import ensure_transactions_supported


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        request_id = request.headers.get("X-Request-Id") or generate_uuid()
        request.state.request_id = request_id  # type: ignore[attr-defined]
        endpoint = str(request.url.path)
        logger = get_logger("RequestContext")
        logger.debug("request.start", request_id=request_id, path=str(request.url.path), method=request.method)
        with REQUEST_LATENCY.labels(request.method, endpoint).time():
            response = await call_next(request)
        REQUEST_COUNT.labels(request.method, endpoint, str(response.status_code)).inc()
        response.headers["X-Request-Id"] = request_id
        return response


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    logger = get_logger("Lifespan")
    await ensure_transactions_supported()
    await ensure_indexes()
    logger.info("Fleet monitor API started")
    yield
    await close_redis_client()
    logger.info("Fleet monitor API stopped")


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    log_settings_debug(settings)

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        middleware=[Middleware(RequestContextMiddleware)],
        lifespan=lifespan,
    )

    configure_cors(app)
    setup_exception_handlers(app)

    app.include_router(routes_stats.router)
    app.include_router(routes_agents.router)
    app.include_router(routes_events.router)
    app.include_router(routes_auth.router)
    app.include_router(routes_health.router)

    if settings.prometheus_enabled:

        @app.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()
