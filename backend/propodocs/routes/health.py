"""
Propodocs Backend — Health Check Route
========================================

What:  GET /health for Docker health checks and load balancer probes.
How:   SELECT 1 against the database; AI providers are reported from local
       state only (configured? circuit open?), so probes never spend quota.

Status levels:
    - healthy:   database reachable, at least one provider available (200)
    - degraded:  database reachable, no provider available (200)
    - unhealthy: database unreachable (503)
"""

import logging
import time

from fastapi import APIRouter, Response, status
from sqlalchemy import text

from propodocs import __version__
from propodocs.database import engine
from propodocs.schemas.common import HealthResponse
from propodocs.services.generation_chain import generation_chain

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        logger.warning("Health check: database unreachable: %s", e)

    providers = generation_chain.provider_statuses()

    if db_status != "connected":
        overall = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif "available" not in providers.values():
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        providers=providers,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
