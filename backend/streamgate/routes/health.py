"""
StreamGate Backend - Health Check Route
=========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Reports configuration status and this process's stream occupancy.
       Does not call Telegram: a probe every few seconds should not spend
       Bot API quota.

Status levels:
    - healthy:        secrets present, streams can be served
    - misconfigured:  SHARED_SECRET or TELEGRAM_BOT_TOKEN missing; /stream answers 500
"""

import logging
import time

from fastapi import APIRouter

from streamgate import __version__
from streamgate.config import settings
from streamgate.schemas.stream import HealthResponse
from streamgate.services.admission import admission_controller

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    configured = settings.is_configured
    if not configured:
        logger.warning("Health check: service is misconfigured")

    return HealthResponse(
        status="healthy" if configured else "misconfigured",
        version=__version__,
        configured=configured,
        active_streams=admission_controller.active,
        max_concurrent_streams=admission_controller.max_concurrent,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
