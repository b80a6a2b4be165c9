"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status

from app.auth import require_token
from app.schemas import HealthResponse, IngestResponse, LatestReadingResponse, SiteSummaryResponse
from services.errors import ClientError, DependencyError, ReadingNotFoundError
from services.telemetry import TelemetryService, build_default_service
from settings import Settings, get_settings

router = APIRouter(prefix="/api/v1")


def get_service() -> TelemetryService:
    return build_default_service()


def _dependency_failure(exc: DependencyError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


async def limit_body_size(request: Request, settings: Settings = Depends(get_settings)) -> None:
    """Refuse request bodies larger than the configured limit with 413."""
    limit = settings.max_body_bytes
    declared = request.headers.get("content-length", "")
    if (declared.isdigit() and int(declared) > limit) or len(await request.body()) > limit:
        raise HTTPException(
            status_code=413,
            detail=f"Request body exceeds {limit} bytes",
        )


@router.post(
    "/telemetry",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestResponse,
    dependencies=[Depends(require_token), Depends(limit_body_size)],
    summary="Ingest one reading or a list of readings.",
)
def ingest(
    payload: Union[List[Any], Dict[str, Any]] = Body(
        ..., description="A reading object or a JSON array of readings."
    ),
    service: TelemetryService = Depends(get_service),
) -> IngestResponse:
    try:
        result = service.ingest(payload)
    except ClientError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DependencyError as exc:
        raise _dependency_failure(exc) from exc
    return IngestResponse.from_result(result)


@router.get(
    "/devices/{device_id}/latest",
    response_model=LatestReadingResponse,
    dependencies=[Depends(require_token)],
    summary="Fetch the most recent reading for a device.",
)
def get_latest(
    device_id: str,
    service: TelemetryService = Depends(get_service),
) -> LatestReadingResponse:
    try:
        reading = service.get_latest(device_id)
    except ReadingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No telemetry found for device",
        ) from exc
    except DependencyError as exc:
        raise _dependency_failure(exc) from exc
    return LatestReadingResponse.from_reading(reading)


@router.get(
    "/sites/{site_id}/summary",
    response_model=SiteSummaryResponse,
    dependencies=[Depends(require_token)],
    summary="Summarise a site's readings between two instants (inclusive).",
)
def get_site_summary(
    site_id: str,
    start: Optional[str] = Query(None, alias="from", description="ISO-8601 range start."),
    end: Optional[str] = Query(None, alias="to", description="ISO-8601 range end."),
    service: TelemetryService = Depends(get_service),
) -> SiteSummaryResponse:
    try:
        summary = service.get_summary(site_id, start, end)
    except ClientError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DependencyError as exc:
        raise _dependency_failure(exc) from exc
    return SiteSummaryResponse.from_summary(summary)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Report store and cache liveness.",
    status_code=status.HTTP_200_OK,
)
def health(service: TelemetryService = Depends(get_service)) -> HealthResponse:
    return HealthResponse.from_status(service.check_health())
