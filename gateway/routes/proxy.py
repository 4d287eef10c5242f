"""Catch-all proxy endpoint routing to backend services."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

logger = logging.getLogger(__name__)

router = APIRouter()


@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    include_in_schema=False,
)
async def proxy_request(path: str, request: Request):
    """Proxy requests to backend services.

    This catch-all route hands every request that no local endpoint served
    to the gateway router, which picks the backend by path prefix.
    """
    gateway_router = getattr(request.app.state, "gateway_router", None)

    if gateway_router is None:
        logger.warning("Gateway router not initialized for proxy request")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service unavailable",
        )

    return await gateway_router.dispatch(request)
