from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from fleetmon.api.deps import get_health_prober, get_ingestion_service
from fleetmon.core.errors import ErrorResponse, InvalidEventError
from fleetmon.core.logging import bind_request_context, get_logger
from fleetmon.core.security import verify_api_key
from fleetmon.models.api.requests import ManualCheckRequest, StatsPayload
from fleetmon.models.api.responses import IngestResponse, ManualCheckResponse
from fleetmon.services.health_prober import HealthProber
from fleetmon.services.ingestion_service import IngestionService

router = APIRouter(prefix="/v1/stats", tags=["stats"])


@router.post("", response_model=IngestResponse, responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
async def ingest_stats(
    payload: StatsPayload,
    request: Request,
    service: IngestionService = Depends(get_ingestion_service),
    _: str | None = Depends(verify_api_key),
) -> IngestResponse:
    logger = bind_request_context(
        get_logger("StatsIngest"),
        request_id=getattr(request.state, "request_id", None),
        agent_id=payload.agent_id,
        api_type=payload.api_type,
        endpoint=str(request.url.path),
    )

    result = await service.ingest(payload)

    logger.info(
        "Stats.ingested",
        handled=[kind.value for kind in result.handled],
        swallowed=[kind.value for kind in result.swallowed],
        rejected=len(result.rejected),
    )
    # Rejected log-only sub-obligations still answer success so agents do not retry.
    return IngestResponse(success=True)


@router.post(
    "/check-manual",
    response_model=ManualCheckResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def check_manual(
    payload: ManualCheckRequest,
    request: Request,
    prober: HealthProber = Depends(get_health_prober),
) -> ManualCheckResponse:
    if not payload.agent_id:
        raise InvalidEventError("agentId is required")

    logger = bind_request_context(
        get_logger("ManualCheck"),
        request_id=getattr(request.state, "request_id", None),
        agent_id=payload.agent_id,
        endpoint=str(request.url.path),
    )
    logger.info("ManualCheck.triggered")

    result = await prober.probe(payload.agent_id)
    return ManualCheckResponse(success=result.success, message=result.message)
