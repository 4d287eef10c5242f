"""Health check endpoints."""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request, status

from gateway.models.response import HealthResponse

router = APIRouter()

# Track start time for uptime calculation
_start_time = time.time()


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health(request: Request):
    """Gateway health with the state of every circuit breaker.

    Reports ``degraded`` while any breaker is not closed.
    """
    uptime_seconds = int(time.time() - _start_time)

    breakers = {}
    gateway_router = getattr(request.app.state, "gateway_router", None)
    if gateway_router is not None:
        breakers = gateway_router.breakers.get_all_states()

    degraded = any(breaker.state != "closed" for breaker in breakers.values())

    return HealthResponse(
        status="degraded" if degraded else "healthy",
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        uptime_seconds=uptime_seconds,
        circuit_breakers=breakers,
    )


@router.get("/healthz", status_code=status.HTTP_200_OK)
async def healthz():
    """Liveness probe endpoint."""
    return {"status": "OK"}
