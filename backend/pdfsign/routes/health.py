"""
PDFSign Backend: Health Check Route
=====================================

Status levels:
    - healthy:   database reachable and storage writable (HTTP 200)
    - unhealthy: either dependency down (HTTP 503)

Both checks are cheap (SELECT 1 and a directory permission check), so load
balancers can poll every few seconds.
"""

import logging
import time

from fastapi import APIRouter, Request, Response

from pdfsign import __version__
from pdfsign.schemas.signature import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "A dependency is down", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(request: Request, response: Response) -> HealthResponse:
    state = request.app.state
    overall = "healthy"

    db_status = "connected" if await state.database.ping() else "disconnected"
    if db_status != "connected":
        overall = "unhealthy"
        logger.warning("Health check: database unreachable")

    storage_status = "writable" if await state.object_store.health_check() else "unavailable"
    if storage_status != "writable":
        overall = "unhealthy"
        logger.warning("Health check: storage not writable")

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        storage=storage_status,
        uptime_seconds=round(time.time() - state.started_at, 2),
    )
